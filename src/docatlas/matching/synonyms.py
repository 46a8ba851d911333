"""Synonym, abbreviation and comparison tables for legal and business documents."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from docatlas.utils import dates

# Term -> related terms.
SYNONYMS: Dict[str, List[str]] = {
    # Investment documents
    "investment": ["safe", "convertible note", "investment agreement", "funding", "capital", "equity"],
    "safe": ["safe agreement", "simple agreement for future equity", "investment"],
    "convertible": ["convertible note", "convertible debt", "conversion agreement"],
    "funding": ["investment", "capital raise", "financing", "round"],
    # Employment documents
    "employment": [
        "offer letter",
        "employment agreement",
        "contractor agreement",
        "work agreement",
        "job offer",
    ],
    "contractor": ["independent contractor", "consultant", "freelancer", "1099", "consulting agreement"],
    "offer": ["offer letter", "employment offer", "job offer"],
    # Legal entities
    "company": ["corporation", "entity", "business", "organization", "firm"],
    "founder": ["co-founder", "founding member", "entrepreneur"],
    "investor": ["shareholder", "stockholder", "equity holder", "partner"],
    # IP documents
    "ip": ["intellectual property", "patent", "trademark", "copyright", "invention"],
    "nda": ["non-disclosure agreement", "confidentiality agreement", "confidential"],
    "assignment": ["invention assignment", "ip assignment", "transfer agreement"],
    # Corporate documents
    "bylaws": ["by-laws", "corporate bylaws", "company bylaws"],
    "incorporation": ["articles of incorporation", "certificate of incorporation", "charter"],
    "board": ["board resolution", "board consent", "director resolution"],
    # Financial terms
    "revenue": ["sales", "income", "earnings", "receipts"],
    "expense": ["cost", "spending", "expenditure", "outlay"],
    "equity": ["stock", "shares", "ownership", "stake"],
    "debt": ["loan", "liability", "obligation", "borrowing"],
    # Status terms
    "signed": ["executed", "completed", "finalized"],
    "unsigned": ["draft", "pending", "not executed", "incomplete"],
    "template": ["blank", "form", "sample", "model"],
    # Time-related
    "recent": ["latest", "newest", "current", "last"],
    "expired": ["lapsed", "terminated", "ended", "invalid"],
    "active": ["current", "valid", "in effect", "ongoing"],
}

# Abbreviation -> full forms.
ABBREVIATIONS: Dict[str, List[str]] = {
    # Legal
    "nda": ["non-disclosure agreement", "nondisclosure agreement"],
    "ip": ["intellectual property"],
    "tos": ["terms of service"],
    "sla": ["service level agreement"],
    "msa": ["master service agreement"],
    "sow": ["statement of work"],
    "loi": ["letter of intent"],
    "mou": ["memorandum of understanding"],
    "piia": ["proprietary information and inventions assignment"],
    # Corporate
    "llc": ["limited liability company"],
    "inc": ["incorporated", "incorporation"],
    "corp": ["corporation"],
    "dba": ["doing business as"],
    "ein": ["employer identification number"],
    "ceo": ["chief executive officer"],
    "cfo": ["chief financial officer"],
    "cto": ["chief technology officer"],
    # Financial
    "safe": ["simple agreement for future equity"],
    "arr": ["annual recurring revenue"],
    "mrr": ["monthly recurring revenue"],
    "cap": ["capitalization", "cap table"],
    "vc": ["venture capital", "venture capitalist"],
    "pe": ["private equity"],
    "ipo": ["initial public offering"],
    # Employment
    "pto": ["paid time off"],
    "hr": ["human resources"],
    "w2": ["employee", "w-2 employee"],
    "1099": ["contractor", "independent contractor"],
}

# General document term -> specific document types.
DOCUMENT_TYPES: Dict[str, List[str]] = {
    "agreement": [
        "employment agreement",
        "contractor agreement",
        "service agreement",
        "purchase agreement",
        "license agreement",
        "partnership agreement",
    ],
    "contract": ["employment contract", "service contract", "sales contract", "vendor contract"],
    "letter": ["offer letter", "termination letter", "resignation letter", "letter of intent"],
    "form": ["tax form", "application form", "consent form", "disclosure form"],
}

_AMOUNT = r"\$?(\d[\d,]*(?:\.\d+)?k?)\b"
_COMPARISON_PATTERNS = [
    re.compile(rf"(?:more|greater)\s+than\s+{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"(?:less|fewer)\s+than\s+{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"(?:over|above|exceeding)\s+{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"(?:under|below)\s+{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"at\s+(?:least|most)\s+{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"(?:worth|value|amount)\s*(?P<op>[><=]+)\s*{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"{_AMOUNT}\s+(?:or\s+)?(?:more|greater|higher)", re.IGNORECASE),
    re.compile(rf"{_AMOUNT}\s+(?:or\s+)?(?:less|fewer|lower)", re.IGNORECASE),
]
_OPERATORS = (">=", "<=", ">", "<", "=")

_UNIT = r"(day|week|month|year)s?"
_LAST_N = re.compile(rf"\b(?:last|past)\s+(\d+)\s+{_UNIT}\b", re.IGNORECASE)
_NEXT_N = re.compile(rf"\bnext\s+(\d+)\s+{_UNIT}\b", re.IGNORECASE)
_NAMED_DAY = re.compile(r"\b(yesterday|today|tomorrow)\b", re.IGNORECASE)
_THIS_UNIT = re.compile(r"\bthis\s+(week|month|year)\b", re.IGNORECASE)

_TOKEN_PUNCTUATION = ".,;:!?\"'()"


@dataclass(frozen=True, slots=True)
class ValueComparison:
    operator: str
    value: float
    field: str

    def accepts(self, amount: float) -> bool:
        if self.operator == ">":
            return amount > self.value
        if self.operator == "<":
            return amount < self.value
        if self.operator == ">=":
            return amount >= self.value
        if self.operator == "<=":
            return amount <= self.value
        return amount == self.value


class SynonymExpander:
    """Expands queries with synonyms and parses value and date phrases."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self.clock = clock

    def expand_query(self, query: str) -> List[str]:
        """Return query variants, original first, without duplicates."""
        variants: Dict[str, None] = {query: None}
        tokens = query.lower().split()
        for index, token in enumerate(tokens):
            core = token.strip(_TOKEN_PUNCTUATION)
            if not core:
                continue
            replacements = SYNONYMS.get(core, []) + ABBREVIATIONS.get(core, [])
            for replacement in replacements:
                expanded = list(tokens)
                expanded[index] = token.replace(core, replacement.lower(), 1)
                variants.setdefault(" ".join(expanded), None)
        return list(variants)

    def related_terms(self, term: str) -> List[str]:
        """All synonyms and abbreviation forms linked to ``term`` in either direction."""
        lowered = term.lower().strip()
        related: Dict[str, None] = {}

        for synonym in SYNONYMS.get(lowered, []):
            related.setdefault(synonym, None)
        for key, synonyms in SYNONYMS.items():
            if lowered in synonyms:
                related.setdefault(key, None)
                for synonym in synonyms:
                    related.setdefault(synonym, None)

        for full_form in ABBREVIATIONS.get(lowered, []):
            related.setdefault(full_form, None)
        for abbreviation in self.abbreviations_for(lowered):
            related.setdefault(abbreviation, None)
            for full_form in ABBREVIATIONS[abbreviation]:
                related.setdefault(full_form, None)

        related.pop(lowered, None)
        return list(related)

    @staticmethod
    def abbreviations_for(full_form: str) -> List[str]:
        lowered = full_form.lower().strip()
        return [abbr for abbr, forms in ABBREVIATIONS.items() if lowered in forms]

    @staticmethod
    def document_subtypes(term: str) -> List[str]:
        return list(DOCUMENT_TYPES.get(term.lower().strip(), []))

    def parse_value_comparison(self, query: str) -> Optional[ValueComparison]:
        """Recognize phrases such as ``more than $50k`` or ``$5k or more``."""
        for pattern in _COMPARISON_PATTERNS:
            match = pattern.search(query)
            if not match:
                continue
            amount = match.groups()[-1].replace(",", "")
            multiplier = 1.0
            if amount.lower().endswith("k"):
                amount = amount[:-1]
                multiplier = 1000.0
            try:
                value = float(amount) * multiplier
            except ValueError:
                continue
            explicit = match.groupdict().get("op")
            operator = explicit if explicit in _OPERATORS else _infer_operator(query)
            return ValueComparison(operator=operator, value=value, field=_infer_value_field(query))
        return None

    def parse_relative_date(self, query: str) -> Optional[datetime]:
        found = self._relative_moment(query)
        return found[0] if found else None

    def relative_date_range(self, query: str) -> Optional[Tuple[datetime, datetime]]:
        """Date window implied by a relative phrase, as ``(start, end)``."""
        found = self._relative_moment(query)
        if not found:
            return None
        moment, future = found
        now = self.clock()
        return (now, moment) if future else (moment, now)

    @staticmethod
    def strip_filter_phrases(query: str) -> str:
        """Remove value comparison and relative date phrases from ``query``."""
        stripped = query
        for pattern in (*_COMPARISON_PATTERNS, _LAST_N, _NEXT_N, _NAMED_DAY, _THIS_UNIT):
            stripped = pattern.sub(" ", stripped)
        return " ".join(stripped.split())

    def _relative_moment(self, query: str) -> Optional[Tuple[datetime, bool]]:
        now = self.clock()

        match = _LAST_N.search(query)
        if match:
            return dates.shift(now, match.group(2), -int(match.group(1))), False

        match = _NEXT_N.search(query)
        if match:
            return dates.shift(now, match.group(2), int(match.group(1))), True

        match = _NAMED_DAY.search(query)
        if match:
            term = match.group(1).lower()
            if term == "yesterday":
                return dates.shift(now, "day", -1), False
            if term == "tomorrow":
                return dates.shift(now, "day", 1), True
            return now.replace(hour=0, minute=0, second=0, microsecond=0), False

        match = _THIS_UNIT.search(query)
        if match:
            return dates.start_of(now, match.group(1)), False

        return None


def _infer_operator(query: str) -> str:
    if re.search(r"or\s+(?:less|fewer|lower)|at\s+most", query, re.IGNORECASE):
        return "<="
    if re.search(r"or\s+(?:more|greater|higher)|at\s+least", query, re.IGNORECASE):
        return ">="
    if re.search(r"\b(?:less|fewer|under|below)\b", query, re.IGNORECASE):
        return "<"
    return ">"


def _infer_value_field(query: str) -> str:
    if re.search(r"investment|invest|funding|capital", query, re.IGNORECASE):
        return "investment_amount"
    if re.search(r"revenue|sales|income", query, re.IGNORECASE):
        return "revenue"
    if re.search(r"expense|cost|spending", query, re.IGNORECASE):
        return "expense"
    return "contract_value"
