"""
Path and filename template expansion.

A template is parsed once into a tuple of tokens and the parse is cached,
so expanding the same destination template for thousands of files costs a
lookup plus a join.

Grammar (anything else between braces is kept verbatim)::

    {date}          reference date as YYYYMMDD
    {Date:FORMAT}   reference date rendered with FORMAT, where the fields
                    YYYY YY MM M DD D HH H mm m ss s are substituted and every
                    other character (separators included) is copied through
    {baseName}      source file name without its final extension
    {ext}           extension of the source file including the dot

Examples:
    >>> resolve_template("/out/{Date:YYYY/MM}/{baseName}_{date}{ext}", date(2024, 1, 5), "report.csv")
    '/out/2024/01/report_20240105.csv'
    >>> resolve_template("{unknown}/{baseName}", date(2024, 1, 5))
    '{unknown}/{baseName}'
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache

_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")
# Longest field names first so YYYY is never read as YY + YY
_DATE_FIELD = re.compile(r"YYYY|YY|MM|M|DD|D|HH|H|mm|m|ss|s")


def _date_fields(value: date) -> dict[str, str]:
    hour = minute = second = 0
    if isinstance(value, datetime):
        hour, minute, second = value.hour, value.minute, value.second
    return {
        "YYYY": f"{value.year:04d}",
        "YY": f"{value.year % 100:02d}",
        "MM": f"{value.month:02d}",
        "M": str(value.month),
        "DD": f"{value.day:02d}",
        "D": str(value.day),
        "HH": f"{hour:02d}",
        "H": str(hour),
        "mm": f"{minute:02d}",
        "m": str(minute),
        "ss": f"{second:02d}",
        "s": str(second),
    }


@dataclass(frozen=True)
class _Context:
    reference_date: date
    filename: str | None

    @property
    def fields(self) -> dict[str, str]:
        return _date_fields(self.reference_date)


@dataclass(frozen=True)
class Literal:
    text: str

    def render(self, ctx: _Context) -> str:
        return self.text


@dataclass(frozen=True)
class CompactDate:
    def render(self, ctx: _Context) -> str:
        return ctx.reference_date.strftime("%Y%m%d")


@dataclass(frozen=True)
class FormattedDate:
    # Alternating literal text and date field names, field entries flagged True
    parts: tuple[tuple[bool, str], ...]

    def render(self, ctx: _Context) -> str:
        fields = ctx.fields
        return "".join(fields[text] if is_field else text for is_field, text in self.parts)


@dataclass(frozen=True)
class BaseName:
    raw: str

    def render(self, ctx: _Context) -> str:
        if ctx.filename is None:
            return self.raw
        return posixpath.splitext(ctx.filename)[0]


@dataclass(frozen=True)
class Extension:
    raw: str

    def render(self, ctx: _Context) -> str:
        if ctx.filename is None:
            return self.raw
        return posixpath.splitext(ctx.filename)[1]


Token = Literal | CompactDate | FormattedDate | BaseName | Extension


@dataclass(frozen=True)
class CompiledTemplate:
    """A parsed template, ready to render against a date and file name."""

    source: str
    tokens: tuple[Token, ...]

    @property
    def is_static(self) -> bool:
        return all(isinstance(t, Literal) for t in self.tokens)

    @property
    def uses_filename(self) -> bool:
        return any(isinstance(t, (BaseName, Extension)) for t in self.tokens)

    def render(self, reference_date: date, filename: str | None = None) -> str:
        if self.is_static:
            return self.source
        ctx = _Context(reference_date=reference_date, filename=filename)
        return "".join(token.render(ctx) for token in self.tokens)


def _parse_date_format(fmt: str) -> tuple[tuple[bool, str], ...]:
    parts: list[tuple[bool, str]] = []
    pos = 0
    for match in _DATE_FIELD.finditer(fmt):
        if match.start() > pos:
            parts.append((False, fmt[pos : match.start()]))
        parts.append((True, match.group(0)))
        pos = match.end()
    if pos < len(fmt):
        parts.append((False, fmt[pos:]))
    return tuple(parts)


def _parse_placeholder(raw: str, body: str) -> Token:
    if body == "date":
        return CompactDate()
    if body == "baseName":
        return BaseName(raw)
    if body == "ext":
        return Extension(raw)
    if body.startswith("Date:") and len(body) > len("Date:"):
        return FormattedDate(_parse_date_format(body[len("Date:") :]))
    return Literal(raw)


@lru_cache(maxsize=1024)
def compile_template(template: str) -> CompiledTemplate:
    """Parse ``template`` into tokens. Results are cached per template string."""
    tokens: list[Token] = []
    pos = 0
    for match in _PLACEHOLDER.finditer(template):
        if match.start() > pos:
            tokens.append(Literal(template[pos : match.start()]))
        tokens.append(_parse_placeholder(match.group(0), match.group(1)))
        pos = match.end()
    if pos < len(template):
        tokens.append(Literal(template[pos:]))
    return CompiledTemplate(source=template, tokens=tuple(tokens))


def resolve_template(template: str, reference_date: date, filename: str | None = None) -> str:
    """Expand ``template`` for ``reference_date`` and, optionally, a source file name.

    Placeholders that are unknown, or that need a file name when none is
    given, are returned verbatim.
    """
    return compile_template(template).render(reference_date, filename)
