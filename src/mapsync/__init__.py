"""
mapsync - rule-driven file synchronization.

Matches locally produced files against declarative mapping rules and
transfers them to an SFTP server or mounted share on a cron schedule,
logging every run, rule and file.
"""

__version__ = "0.1.0"
