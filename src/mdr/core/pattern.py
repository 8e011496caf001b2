"""Name templates for index and pipeline routing.

A template mixes literal text, UTC date specifiers and ``{{tag}}``
placeholders, e.g. ``"metrics-{{host}}-%Y.%m.%d"``.

Supported date specifiers:

======  ==========================================
``%Y``  4-digit year (2024)
``%y``  2-digit year (24)
``%m``  month (01..12)
``%d``  day of month (01..31)
``%H``  hour (00..23)
``%V``  ISO-8601 week number (1..53, not padded)
======  ==========================================

Templates are compiled once into an immutable :class:`CompiledPattern` and
resolved per record; resolved names are never cached.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

log = structlog.get_logger(__name__)

_OPEN = "{{"
_CLOSE = "}}"
_SLOT = "%s"

_DATE_TOKEN = re.compile(r"%[YymdHV]")


@dataclass(frozen=True)
class TagSlot:
    """Placeholder for the value of one tag."""

    key: str


Segment = str | TagSlot


@dataclass(frozen=True)
class CompiledPattern:
    """A parsed name template.

    ``segments`` alternate literal text and :class:`TagSlot` entries in
    template order; ``tag_keys`` lists the slot keys in that same order.
    """

    raw: str
    segments: tuple[Segment, ...]

    @property
    def tag_keys(self) -> tuple[str, ...]:
        return tuple(s.key for s in self.segments if isinstance(s, TagSlot))

    @property
    def normalized(self) -> str:
        """Template with each tag placeholder replaced by a positional ``%s`` slot."""
        return "".join(_SLOT if isinstance(s, TagSlot) else s for s in self.segments)

    @property
    def has_date(self) -> bool:
        return any(isinstance(s, str) and "%" in s for s in self.segments)

    def __bool__(self) -> bool:
        return bool(self.raw)

    def __str__(self) -> str:
        return self.raw


def compile_pattern(template: str) -> CompiledPattern:
    """Split ``template`` into literal segments and tag slots in one left-to-right pass.

    An opening ``{{`` without a closing ``}}`` after it ends the scan; the
    remainder is kept as literal text.
    """
    segments: list[Segment] = []
    pos = 0
    while True:
        start = template.find(_OPEN, pos)
        if start < 0:
            break
        end = template.find(_CLOSE, start + len(_OPEN))
        if end < 0:
            break
        if start > pos:
            segments.append(template[pos:start])
        segments.append(TagSlot(template[start + len(_OPEN) : end].strip()))
        pos = end + len(_CLOSE)
    if pos < len(template):
        segments.append(template[pos:])
    return CompiledPattern(raw=template, segments=tuple(segments))


def iso_week(ts: datetime) -> int:
    return ts.isocalendar()[1]


def render_date(text: str, ts: datetime) -> str:
    """Substitute known date specifiers in ``text`` with values of ``ts`` in UTC.

    Unknown ``%`` sequences are left as they are.
    """
    if "%" not in text:
        return text
    utc = ts.astimezone(timezone.utc) if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    values = {
        "%Y": f"{utc.year:04d}",
        "%y": f"{utc.year % 100:02d}",
        "%m": f"{utc.month:02d}",
        "%d": f"{utc.day:02d}",
        "%H": f"{utc.hour:02d}",
        "%V": str(iso_week(utc)),
    }
    return _DATE_TOKEN.sub(lambda m: values[m.group(0)], text)


def resolve_index_name(
    pattern: CompiledPattern,
    timestamp: datetime,
    tags: Mapping[str, str],
    default_tag_value: str = "",
) -> str:
    """Resolve the index name for one record.

    Missing tags are replaced by ``default_tag_value``; this never fails.
    """
    parts: list[str] = []
    for segment in pattern.segments:
        if isinstance(segment, TagSlot):
            value = tags.get(segment.key)
            if value is None:
                log.debug(
                    "index.tag_missing",
                    tag=segment.key,
                    default=default_tag_value,
                )
                value = default_tag_value
            parts.append(value)
        else:
            parts.append(render_date(segment, timestamp))
    return "".join(parts)


def resolve_pipeline_name(
    pattern: CompiledPattern,
    tags: Mapping[str, str],
    default_pipeline: str = "",
) -> str:
    """Resolve the ingest pipeline for one record; ``""`` means no pipeline.

    A template without tag placeholders is returned as is. If any referenced
    tag is missing, ``default_pipeline`` is returned instead.
    """
    if not pattern.tag_keys:
        return pattern.raw
    parts: list[str] = []
    for segment in pattern.segments:
        if isinstance(segment, TagSlot):
            value = tags.get(segment.key)
            if value is None:
                log.debug(
                    "pipeline.tag_missing",
                    tag=segment.key,
                    default=default_pipeline,
                )
                return default_pipeline
            parts.append(value)
        else:
            parts.append(segment)
    return "".join(parts)
