"""Plain-text serialization of memory categories.

A category file looks like::

    # Financial Summary
    Last Updated: 2024-05-01T12:00:00+00:00

    ## Quick Facts
    - Jane Doe: $35,000 (Source: safe_a.pdf; safe_b.pdf)

    ## SAFE Agreements
    - SAFE Agreement with Jane Doe - $25,000 (2024-01-15) [Source: safe_a.pdf]

Quick facts carry only a fact and a source. Section lines may add a value
(``- <value>``) and an ISO date (``(<date>)``) before the source tag.
Sections without entries are not written.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as dateutil_parser

from docatlas.models import MemoryCategory, MemoryFactEntry

SOURCE_SEPARATOR = "; "
LAST_UPDATED_PREFIX = "Last Updated: "
QUICK_FACTS_HEADER = "Quick Facts"

_QUICK_FACT_LINE = re.compile(r"^- (?P<fact>.*) \(Source: (?P<source>.*)\)$")
_SOURCE_TAG = re.compile(r"\s*\[Source: (?P<source>[^\]]*)\]$")
_DATE_SUFFIX = re.compile(r"\s\((?P<date>\d{4}-\d{2}-\d{2}[^)]*)\)$")
_VALUE_SUFFIX = re.compile(r" - (?P<value>[$€£¥]?\d[\d,]*(?:\.\d+)?\S*)$")
_VALUE_TEXT = re.compile(r"^[$€£¥]?\d[\d,]*(?:\.\d+)?\S*$")
_LEADING_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?")


def format_currency(amount: float) -> str:
    """``35000`` -> ``$35,000``; fractional amounts keep two decimals."""
    if float(amount).is_integer():
        return f"${amount:,.0f}"
    return f"${amount:,.2f}"


def parse_monetary_value(value: Any) -> float:
    """Parse a currency string such as ``$25,000``; anything unparseable is ``0``."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[$€£¥,]", "", str(value)).strip()
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def display_value(raw: Any) -> Optional[str]:
    """Value text for a fact line, or ``None`` when ``raw`` carries no amount."""
    if raw is None or isinstance(raw, bool):
        return None
    text = " ".join(str(raw).split())
    if _VALUE_TEXT.match(text):
        return text
    amount = parse_monetary_value(raw)
    return format_currency(amount) if amount > 0 else None


def single_line(text: str) -> str:
    return " ".join(str(text).split())


def render_category(category: MemoryCategory) -> str:
    lines: List[str] = [
        f"# {single_line(category.title)}",
        f"{LAST_UPDATED_PREFIX}{category.last_updated.isoformat()}",
        "",
    ]

    if category.quick_facts:
        lines.append(f"## {QUICK_FACTS_HEADER}")
        for entry in category.quick_facts:
            lines.append(f"- {single_line(entry.fact)} (Source: {single_line(entry.source)})")
        lines.append("")

    for name, entries in category.sections.items():
        if not entries:
            continue
        lines.append(f"## {name}")
        for entry in entries:
            line = f"- {single_line(entry.fact)}"
            if entry.value:
                line += f" - {single_line(entry.value)}"
            if entry.date:
                line += f" ({single_line(entry.date)})"
            line += f" [Source: {single_line(entry.source)}]"
            lines.append(line)
        lines.append("")

    return "\n".join(lines) + "\n"


def parse_category(text: str) -> MemoryCategory:
    """Inverse of :func:`render_category` (entry metadata is not stored)."""
    title = ""
    last_updated: Optional[datetime] = None
    quick_facts: List[MemoryFactEntry] = []
    sections: Dict[str, List[MemoryFactEntry]] = {}
    current: Optional[str] = None

    for raw_line in text.splitlines():
        line = raw_line.rstrip()
        if not line:
            continue
        if line.startswith("## "):
            current = line[3:].strip()
            if current != QUICK_FACTS_HEADER:
                sections.setdefault(current, [])
            continue
        if line.startswith("# "):
            title = line[2:].strip()
            continue
        if line.startswith(LAST_UPDATED_PREFIX):
            last_updated = dateutil_parser.isoparse(line[len(LAST_UPDATED_PREFIX):].strip())
            continue
        if not line.startswith("- ") or current is None:
            continue

        if current == QUICK_FACTS_HEADER:
            match = _QUICK_FACT_LINE.match(line)
            if match:
                quick_facts.append(MemoryFactEntry(fact=match["fact"], source=match["source"]))
            else:
                quick_facts.append(MemoryFactEntry(fact=line[2:], source=""))
            continue

        sections[current].append(_parse_entry(line[2:]))

    return MemoryCategory(
        title=title,
        last_updated=last_updated or datetime.min,
        quick_facts=quick_facts,
        sections=sections,
    )


def _parse_entry(body: str) -> MemoryFactEntry:
    source = ""
    match = _SOURCE_TAG.search(body)
    if match:
        source = match["source"]
        body = body[: match.start()]

    date: Optional[str] = None
    match = _DATE_SUFFIX.search(body)
    if match:
        date = match["date"]
        body = body[: match.start()]

    value: Optional[str] = None
    match = _VALUE_SUFFIX.search(body)
    if match:
        value = match["value"]
        body = body[: match.start()]

    return MemoryFactEntry(fact=body, source=source, date=date, value=value)


def split_sources(source: str) -> List[str]:
    return [part.strip() for part in source.split(SOURCE_SEPARATOR.strip()) if part.strip()]
