"""Topic extractors that roll document metadata up into memory categories.

Every ``generate_*`` function takes the full record list plus an
:class:`ExtractionContext` and returns a :class:`MemoryCategory`. They do not
touch the filesystem, log, or read the clock: the same inputs always produce
the same category.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from docatlas.memory.formatting import (
    SOURCE_SEPARATOR,
    display_value,
    format_currency,
    parse_monetary_value,
    single_line,
)
from docatlas.models import (
    DocumentMetadataRecord,
    ExecutionStatus,
    FactValue,
    MemoryCategory,
    MemoryFactEntry,
    party_with_role,
)
from docatlas.utils.dates import is_open_ended, parse_date
from docatlas.utils.text import humanize_key, normalize_key

COUNTERPARTY_ROLES = ("Investor", "Customer", "Client")
VENDOR_ROLES = ("Vendor", "Supplier", "Service Provider", "Licensor", "Contractor")
COMPANY_ROLES = ("Company",)
UNKNOWN_PARTY = "Unknown"
HIGH_VALUE_THRESHOLD = 50_000
EXPIRING_WINDOW_DAYS = 90


@dataclass(frozen=True, slots=True)
class ExtractionContext:
    now: datetime
    company_names: Tuple[str, ...] = ()


# --- fact collection -------------------------------------------------------


class FactCollector:
    """Ordered facts keyed by identity; a repeated fact only gains sources."""

    def __init__(self) -> None:
        self._entries: Dict[str, MemoryFactEntry] = {}
        self._sources: Dict[str, List[str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add(
        self,
        fact: str,
        source: str,
        *,
        date: Optional[str] = None,
        value: Optional[str] = None,
        key: Optional[str] = None,
        metadata: Optional[Dict[str, object]] = None,
    ) -> None:
        fact = single_line(fact)
        identity = key or "|".join((normalize_key(fact), date or "", value or ""))
        if identity in self._entries:
            sources = self._sources[identity]
            if source not in sources:
                sources.append(source)
            return
        self._entries[identity] = MemoryFactEntry(
            fact=fact, source=source, date=date, value=value, metadata=dict(metadata or {})
        )
        self._sources[identity] = [source]

    def entries(self) -> List[MemoryFactEntry]:
        result = []
        for identity, entry in self._entries.items():
            entry.source = SOURCE_SEPARATOR.join(self._sources[identity])
            result.append(entry)
        return result


class CategoryBuilder:
    def __init__(self, title: str, sections: Sequence[str], context: ExtractionContext) -> None:
        self.title = title
        self.context = context
        self.quick = FactCollector()
        self.sections: Dict[str, FactCollector] = {name: FactCollector() for name in sections}

    def quick_fact(self, fact: str, source: str) -> None:
        self.quick.add(fact, source)

    def add(self, section: str, fact: str, source: str, **kwargs) -> None:
        self.sections[section].add(fact, source, **kwargs)

    def count(self, section: str) -> int:
        return len(self.sections[section])

    def build(self) -> MemoryCategory:
        return MemoryCategory(
            title=self.title,
            last_updated=self.context.now,
            quick_facts=self.quick.entries(),
            sections={name: collector.entries() for name, collector in self.sections.items()},
        )


# --- record helpers --------------------------------------------------------


def _source(record: DocumentMetadataRecord) -> str:
    return record.path.name


def _label(record: DocumentMetadataRecord) -> str:
    return record.document_type or record.path.name


def _mentions(record: DocumentMetadataRecord, *needles: str) -> bool:
    """Case-insensitive search in the filename and document type."""
    haystack = f"{record.path.name} {record.document_type or ''}".lower()
    return any(needle.lower() in haystack for needle in needles)


def _mentions_word(record: DocumentMetadataRecord, word: str) -> bool:
    haystack = f"{record.path.name} {record.document_type or ''}"
    return re.search(rf"\b{re.escape(word)}\b", haystack, re.IGNORECASE) is not None


def _in_topic(record: DocumentMetadataRecord, topic: str) -> bool:
    """True if the record is filed under ``topic`` by category or by folder."""
    if record.category == topic:
        return True
    return any(topic.lower() in part.lower() for part in record.path.parent.parts)


def _iso_date(value: Optional[str]) -> Optional[str]:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def _text_mentions(text: Optional[str], *needles: str) -> bool:
    lowered = (text or "").lower()
    return any(needle in lowered for needle in needles)


def _fact_amount(value: Optional[FactValue]) -> float:
    return parse_monetary_value(value)


def _format_fact(value: FactValue) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_own_company(name: str, record: DocumentMetadataRecord, context: ExtractionContext) -> bool:
    lowered = name.strip().lower()
    if not lowered:
        return False
    if any(company.lower() in lowered for company in context.company_names if company.strip()):
        return True
    for party in record.primary_parties:
        if party.has_role(*COMPANY_ROLES) and lowered in (
            party.name.lower(),
            (party.organization or "").lower(),
        ):
            return True
    return False


def counterparty_name(
    record: DocumentMetadataRecord,
    context: ExtractionContext,
    roles: Sequence[str] = COUNTERPARTY_ROLES,
) -> str:
    """Role-tagged party first, then the first signer that is not us."""
    party = party_with_role(record, *roles)
    if party is not None:
        return party.organization or party.name
    for signer in record.signers:
        if not is_own_company(signer.name, record, context):
            return signer.name
    return UNKNOWN_PARTY


def investor_name(record: DocumentMetadataRecord, context: ExtractionContext) -> str:
    party = party_with_role(record, "Investor")
    if party is not None:
        return party.name
    return counterparty_name(record, context)


def is_investment_document(record: DocumentMetadataRecord) -> bool:
    if _mentions_word(record, "SAFE") or "investment" in record.category.lower():
        return True
    return party_with_role(record, "Investor") is not None


def investment_amount(record: DocumentMetadataRecord) -> float:
    amount = _fact_amount(record.critical_facts.get("investment_amount"))
    if amount <= 0:
        amount = parse_monetary_value(record.contract_value)
    return amount


@dataclass(slots=True)
class InvestorTotal:
    name: str
    amount: float = 0.0
    documents: List[str] = field(default_factory=list)


def investor_totals(
    records: Iterable[DocumentMetadataRecord], context: ExtractionContext
) -> List[InvestorTotal]:
    """Running sum per investor across all investment documents, largest first."""
    totals: Dict[str, InvestorTotal] = {}
    for record in records:
        if not is_investment_document(record):
            continue
        amount = investment_amount(record)
        if amount <= 0:
            continue
        name = investor_name(record, context)
        total = totals.setdefault(normalize_key(name), InvestorTotal(name=name))
        total.amount += amount
        if _source(record) not in total.documents:
            total.documents.append(_source(record))
    return sorted(totals.values(), key=lambda total: -total.amount)


def _fact_items(
    facts: Dict[str, FactValue], predicate: Callable[[str], bool]
) -> List[Tuple[str, FactValue]]:
    return [(key, value) for key, value in facts.items() if predicate(key.lower())]


def _key_has_token(key: str, *tokens: str) -> bool:
    parts = key.lower().split("_")
    return any(token in parts for token in tokens)


# --- extractors ------------------------------------------------------------


def generate_company_info(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Company Information",
        (
            "Company Names",
            "Formation Details",
            "Corporate Structure",
            "Tax Information",
            "Addresses",
            "Key Milestones",
        ),
        context,
    )

    formation_laws: List[str] = []
    all_laws: Counter[str] = Counter()
    law_labels: Dict[str, str] = {}
    first_address: Optional[str] = None
    ein: Optional[Tuple[str, str]] = None

    for record in records:
        source = _source(record)
        is_formation = _mentions(
            record, "certificate of incorporation", "certificate of formation", "articles of"
        )

        if is_formation:
            builder.add(
                "Formation Details",
                f"Formation document: {record.document_type or 'Certificate'}",
                source,
                date=_iso_date(record.effective_date),
            )
            company = party_with_role(record, *COMPANY_ROLES)
            if company is not None:
                builder.add("Company Names", f"Legal name: {company.organization or company.name}", source)
            if record.governing_law:
                formation_laws.append(record.governing_law)

        if record.governing_law:
            key = normalize_key(record.governing_law)
            all_laws[key] += 1
            law_labels.setdefault(key, record.governing_law)
            builder.add(
                "Formation Details",
                f"Governing law: {record.governing_law}",
                source,
                key=f"law:{key}",
            )

        for party in record.primary_parties:
            if party.address and party.has_role(*COMPANY_ROLES):
                address = single_line(party.address)
                builder.add(
                    "Addresses",
                    f"{party.organization or party.name}: {address}",
                    source,
                    key=f"address:{normalize_key(address)}",
                )
                first_address = first_address or address

        if _mentions(record, "bylaws", "by-laws", "board consent", "board resolution", "stockholder consent"):
            builder.add(
                "Corporate Structure",
                _label(record),
                source,
                date=_iso_date(record.fully_executed_date or record.effective_date),
            )

        if _mentions(record, "conversion", "merger", "spinout", "spin-off"):
            builder.add(
                "Key Milestones",
                f"Corporate event: {_label(record)}",
                source,
                date=_iso_date(record.effective_date),
            )

        for key, value in record.critical_facts.items():
            lowered = key.lower()
            if lowered in ("ein", "ein_number", "employer_identification_number"):
                builder.add("Tax Information", f"EIN: {value}", source, key=f"tax:ein:{value}")
                ein = ein or (str(value), source)
            elif _key_has_token(lowered, "tax", "ein", "tin"):
                builder.add(
                    "Tax Information",
                    f"{humanize_key(key).upper()}: {_format_fact(value)}",
                    source,
                    key=f"tax:{lowered}:{value}",
                )

        if ein is None and _mentions_word(record, "EIN") and record.notes:
            match = re.search(r"\b\d{2}-\d{7}\b", record.notes)
            if match:
                builder.add("Tax Information", f"EIN: {match.group(0)}", source, key=f"tax:ein:{match.group(0)}")
                ein = (match.group(0), source)

    if ein is not None:
        builder.quick_fact(f"EIN: {ein[0]}", ein[1])
    if formation_laws:
        builder.quick_fact(f"State of Incorporation: {formation_laws[0]}", "Formation documents")
    elif all_laws:
        key, _ = all_laws.most_common(1)[0]
        builder.quick_fact(f"Primary governing law: {law_labels[key]}", "Multiple documents")
    if first_address:
        builder.quick_fact(f"Primary Address: {first_address}", "Multiple documents")
    return builder.build()


_PEOPLE_SECTIONS = {
    "employee": "Employees",
    "contractor": "Contractors",
    "consultant": "Contractors",
    "advisor": "Advisors",
    "board member": "Board Members",
    "director": "Board Members",
    "investor": "Investors",
}


@dataclass(slots=True)
class _Person:
    name: str
    roles: List[str] = field(default_factory=list)
    title: Optional[str] = None
    email: Optional[str] = None
    organization: Optional[str] = None
    sources: List[str] = field(default_factory=list)

    def add_role(self, role: str) -> None:
        if role and role not in self.roles:
            self.roles.append(role)

    def add_source(self, source: str) -> None:
        if source not in self.sources:
            self.sources.append(source)


def _role_from_document(record: DocumentMetadataRecord) -> Optional[str]:
    if _mentions(record, "employment", "offer letter"):
        return "Employee"
    if _mentions(record, "services agreement", "contractor", "consulting"):
        return "Contractor"
    if _mentions(record, "advisor"):
        return "Advisor"
    if _mentions(record, "board"):
        return "Board Member"
    if _mentions_word(record, "SAFE") or _mentions(record, "investment"):
        return "Investor"
    return None


def generate_people_directory(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "People Directory",
        ("Employees", "Contractors", "Advisors", "Board Members", "Investors", "Vendors"),
        context,
    )
    people: Dict[str, _Person] = {}

    def person(name: str) -> _Person:
        return people.setdefault(normalize_key(name), _Person(name=name))

    for record in records:
        source = _source(record)
        document_role = _role_from_document(record)

        for signer in record.signers:
            if is_own_company(signer.name, record, context):
                continue
            entry = person(signer.name)
            entry.add_source(source)
            if document_role:
                entry.add_role(document_role)

        for party in record.primary_parties:
            if party.has_role(*COMPANY_ROLES) or is_own_company(party.name, record, context):
                continue
            entry = person(party.name)
            entry.add_source(source)
            entry.title = party.title or entry.title
            entry.email = party.email or entry.email
            entry.organization = party.organization or entry.organization
            if party.role:
                entry.add_role(party.role)

    for entry in people.values():
        fact = entry.name
        if entry.title:
            fact += f" - {entry.title}"
        if entry.email:
            fact += f" <{entry.email}>"
        if entry.organization and entry.organization != entry.name:
            fact += f", {entry.organization}"
        sections = []
        for role in entry.roles:
            section = _PEOPLE_SECTIONS.get(role.lower(), "Vendors")
            if section not in sections:
                sections.append(section)
        for section in sections:
            for source in entry.sources:
                builder.add(section, fact, source, key=f"{section}:{normalize_key(entry.name)}")

    builder.quick_fact(f"Total people in directory: {len(people)}", "All documents")
    if builder.count("Employees"):
        builder.quick_fact(f"Employees: {builder.count('Employees')}", "Employment documents")
    return builder.build()


def generate_financial_summary(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Financial Summary",
        (
            "Capital Raised",
            "Investment Rounds",
            "SAFE Agreements",
            "Banking",
            "Insurance",
            "Loans",
            "Financial Impact Analysis",
            "Key Financial Terms",
        ),
        context,
    )

    for record in records:
        source = _source(record)
        has_financials = (
            bool(record.financial_terms)
            or bool(record.contract_value)
            or _text_mentions(record.business_context, "invest", "financ")
        )
        if has_financials:
            if record.business_context:
                builder.add(
                    "Financial Impact Analysis",
                    f"{_label(record)}: {record.business_context}",
                    source,
                )
            for term in record.key_terms:
                if _text_mentions(term, "invest", "financ", "capital", "equity"):
                    builder.add("Key Financial Terms", term, source)

        if is_investment_document(record):
            amount = investment_amount(record)
            if amount > 0:
                name = investor_name(record, context)
                if _mentions_word(record, "SAFE"):
                    section, fact = "SAFE Agreements", f"SAFE Agreement with {name}"
                else:
                    section, fact = "Investment Rounds", f"Investment from {name}"
                details = {
                    key: value
                    for key, value in record.critical_facts.items()
                    if key in ("valuation_cap", "discount_rate", "mfn_provision")
                }
                builder.add(
                    section,
                    fact,
                    source,
                    value=format_currency(amount),
                    date=_iso_date(record.effective_date),
                    metadata=details,
                )
                cap = _fact_amount(record.critical_facts.get("valuation_cap"))
                if cap > 0:
                    builder.add(
                        "Key Financial Terms",
                        f"{name} valuation cap: {format_currency(cap)}",
                        source,
                    )
                if record.business_context:
                    builder.add(
                        "Capital Raised",
                        f"{name} investment context: {record.business_context}",
                        source,
                    )
        elif _mentions(record, "stock purchase"):
            value = display_value(record.contract_value)
            if value:
                builder.add(
                    "Investment Rounds",
                    f"Investment from {investor_name(record, context)}",
                    source,
                    value=value,
                    date=_iso_date(record.effective_date),
                )

        if _mentions(record, "insurance"):
            facts = record.critical_facts
            if facts.get("policy_number") or facts.get("coverage_amount"):
                fact = record.document_type or "Insurance Policy"
                if facts.get("policy_number"):
                    fact += f" - Policy #{facts['policy_number']}"
                carrier = facts.get("carrier")
                if carrier:
                    fact += f", carrier {carrier}"
                builder.add("Insurance", fact, source, value=display_value(facts.get("coverage_amount")))

        if _mentions(record, "bank", "deposit account"):
            builder.add("Banking", _label(record), source, date=_iso_date(record.effective_date))

        if _mentions(record, "loan", "promissory note", "credit facility"):
            principal = record.critical_facts.get("principal_amount") or record.contract_value
            builder.add(
                "Loans",
                f"{_label(record)} with {counterparty_name(record, context, ('Lender',) + COUNTERPARTY_ROLES)}",
                source,
                value=display_value(principal),
                date=_iso_date(record.effective_date),
            )

    investors = investor_totals(records, context)
    for total in investors:
        builder.add(
            "Capital Raised",
            f"{total.name} - Total Investment",
            SOURCE_SEPARATOR.join(total.documents),
            value=format_currency(total.amount),
        )
    for total in investors[:5]:
        builder.quick_fact(
            f"{total.name}: {format_currency(total.amount)}",
            SOURCE_SEPARATOR.join(total.documents),
        )

    raised = sum(total.amount for total in investors)
    if raised > 0:
        builder.quick_fact(f"Total capital raised: {format_currency(raised)}", "All investment documents")
        builder.quick_fact(f"Number of investors: {len(investors)}", "All investment documents")
    return builder.build()


_REVENUE_FACT_TOKENS = ("revenue", "sales", "income", "fee", "payment", "subscription")


def _is_customer_agreement(record: DocumentMetadataRecord) -> bool:
    return record.category == "Sales_Customer_Agreements" or _in_topic(record, "Sales_and_Revenue")


def generate_revenue_and_sales(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Revenue and Sales",
        (
            "Customer Agreements",
            "Revenue by Type",
            "Contract Values",
            "Renewal Schedule",
            "Payment Terms",
            "Business Context",
            "Key Obligations",
            "Key Contract Terms",
            "Revenue Impact Analysis",
        ),
        context,
    )

    total_value = 0.0
    customers = 0
    revenue_by_type: Dict[str, float] = {}
    key_term_facts: List[Tuple[str, str]] = []
    obligation_facts: List[Tuple[str, str]] = []

    for record in records:
        is_customer = _is_customer_agreement(record)
        relevant = (
            is_customer
            or bool(record.financial_terms)
            or _text_mentions(record.business_context, "revenue")
        )
        if not relevant:
            continue

        source = _source(record)
        customer = counterparty_name(record, context)
        if is_customer:
            customers += 1

        amount = parse_monetary_value(record.contract_value)
        if amount > 0:
            total_value += amount
            builder.add(
                "Customer Agreements",
                f"{customer} - {record.document_type or 'Agreement'}",
                source,
                value=display_value(record.contract_value),
                date=_iso_date(record.effective_date),
            )
            doc_type = record.document_type or "Other"
            revenue_by_type[doc_type] = revenue_by_type.get(doc_type, 0.0) + amount

        if record.business_context:
            builder.add("Business Context", record.business_context, source)
            if re.search(r"\$[\d,]+|revenue|income|sales", record.business_context, re.IGNORECASE):
                builder.add(
                    "Revenue Impact Analysis",
                    f"{_label(record)}: {record.business_context}",
                    source,
                )

        summary_parts = []
        for key, value in record.financial_terms.items():
            label = humanize_key(key, title=True)
            summary_parts.append(f"{label}: {_format_fact(value)}")
            builder.add("Payment Terms", f"{customer} - {label}: {_format_fact(value)}", source)
        if len(summary_parts) > 1:
            builder.add(
                "Contract Values",
                f"{customer} Financial Summary: {'; '.join(summary_parts)}",
                source,
            )

        for term in record.key_terms:
            builder.add("Key Contract Terms", f"{customer}: {term}", source)
        key_term_facts.extend((term, source) for term in record.key_terms[:5])

        for obligation in record.obligations:
            builder.add("Key Obligations", f"{customer}: {obligation}", source)
        if len(record.obligations) > 3:
            obligation_facts.append(
                (f"{customer} has {len(record.obligations)} key obligations", source)
            )

        expiration = _iso_date(record.expiration_date)
        if expiration and not is_open_ended(record.expiration_date):
            fact = f"{customer} - {record.document_type or 'Agreement'} renewal"
            if record.renewal_terms:
                fact += f": {record.renewal_terms}"
            builder.add("Renewal Schedule", fact, source, date=expiration)

        for key, value in _fact_items(
            record.critical_facts, lambda k: any(token in k for token in _REVENUE_FACT_TOKENS)
        ):
            builder.add(
                "Contract Values",
                f"{customer} - {humanize_key(key)}: {_format_fact(value)}",
                source,
            )

    for doc_type, amount in revenue_by_type.items():
        builder.add("Revenue by Type", f"{doc_type}: {format_currency(amount)}", "Calculated from agreements")

    for fact, source in key_term_facts:
        builder.quick_fact(f"Key Term: {fact}", source)
    for fact, source in obligation_facts:
        builder.quick_fact(fact, source)
    if total_value > 0:
        builder.quick_fact(f"Total contract value: {format_currency(total_value)}", "All customer agreements")
    if customers > 0:
        builder.quick_fact(f"Active customers: {customers}", "All customer agreements")
        if total_value > 0:
            builder.quick_fact(
                f"Average contract value: {format_currency(round(total_value / customers))}",
                "Calculated from all agreements",
            )
    return builder.build()


def generate_partnerships_and_channels(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Partnerships and Channels",
        ("Strategic Partnerships", "Channel Partners", "Business Development", "Joint Ventures"),
        context,
    )
    partners = set()

    for record in records:
        is_partnership = _in_topic(record, "Marketing_and_Partnerships") or _mentions(
            record, "partnership", "joint venture", "reseller", "referral", "channel"
        )
        if not is_partnership:
            continue

        source = _source(record)
        partner = counterparty_name(record, context, ("Partner",) + COUNTERPARTY_ROLES)
        partners.add(normalize_key(partner))
        date = _iso_date(record.effective_date)

        if _mentions(record, "joint venture"):
            builder.add("Joint Ventures", f"Joint venture with {partner}", source, date=date)
        elif _mentions(record, "reseller", "referral", "channel", "affiliate"):
            builder.add("Channel Partners", f"{partner} - {_label(record)}", source, date=date)
        else:
            builder.add("Strategic Partnerships", f"Partnership with {partner}", source, date=date)

        if record.business_context:
            builder.add("Business Development", f"{partner}: {record.business_context}", source)

    if partners:
        builder.quick_fact(f"Total partners: {len(partners)}", "Partnership documents")
    return builder.build()


_SPECIAL_RIGHTS = ("pro rata", "pro-rata", "mfn", "most favored nation", "board seat", "information rights")


def generate_investors_and_cap_table(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Investors and Cap Table",
        ("Investor Summary", "Investment Rounds", "Ownership Breakdown", "Special Rights"),
        context,
    )

    for record in records:
        if not is_investment_document(record):
            continue
        source = _source(record)
        name = investor_name(record, context)
        amount = investment_amount(record)
        if amount > 0:
            builder.add(
                "Investment Rounds",
                f"{record.document_type or 'Investment'} - {name}",
                source,
                value=format_currency(amount),
                date=_iso_date(record.effective_date),
            )

        for key, value in _fact_items(
            record.critical_facts,
            lambda k: any(token in k for token in ("ownership", "percentage", "shares")),
        ):
            builder.add("Ownership Breakdown", f"{name} - {humanize_key(key)}: {_format_fact(value)}", source)

        mfn = record.critical_facts.get("mfn_provision")
        if mfn is True or (isinstance(mfn, str) and mfn.lower() in ("yes", "true")):
            builder.add("Special Rights", f"{name}: MFN provision", source)
        for term in record.key_terms:
            if _text_mentions(term, *_SPECIAL_RIGHTS):
                builder.add("Special Rights", f"{name}: {term}", source)

    investors = investor_totals(records, context)
    for total in investors[:5]:
        builder.quick_fact(
            f"{total.name}: {format_currency(total.amount)}",
            SOURCE_SEPARATOR.join(total.documents),
        )
    for total in investors:
        builder.add(
            "Investor Summary",
            f"{total.name} - Total investment",
            SOURCE_SEPARATOR.join(total.documents),
            value=format_currency(total.amount),
        )
    return builder.build()


def generate_vendors_and_suppliers(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Vendors and Suppliers",
        ("Technology Vendors", "Service Providers", "Facilities", "Other Vendors"),
        context,
    )
    vendors = set()

    for record in records:
        if not _in_topic(record, "Operations_and_Vendors"):
            continue
        folders = " ".join(record.path.parent.parts).lower()
        if "technology" in folders or _mentions(record, "software", "saas", "subscription"):
            section = "Technology Vendors"
        elif "facilit" in folders or _mentions(record, "lease", "office"):
            section = "Facilities"
        elif "service" in folders or party_with_role(record, "Service Provider") is not None:
            section = "Service Providers"
        else:
            section = "Other Vendors"

        vendor = counterparty_name(record, context, VENDOR_ROLES)
        vendors.add(normalize_key(vendor))
        builder.add(
            section,
            f"{vendor} - {record.document_type or 'Agreement'}",
            _source(record),
            value=display_value(record.contract_value),
        )

    if vendors:
        builder.quick_fact(f"Total vendors: {len(vendors)}", "Vendor agreements")
    return builder.build()


def generate_legal_entities(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Legal Entities",
        ("Parent Company", "Subsidiaries", "Related Entities", "Entity History"),
        context,
    )
    entities: Dict[str, Tuple[str, str]] = {}
    subsidiaries: Dict[str, Tuple[str, str]] = {}

    for record in records:
        source = _source(record)
        if _mentions(record, "formation", "incorporation"):
            for party in record.primary_parties:
                if party.organization and party.has_role(*COMPANY_ROLES):
                    entities.setdefault(normalize_key(party.organization), (party.organization, source))

        if _mentions(record, "subsidiary"):
            for party in record.primary_parties:
                if party.organization and party.has_role("Subsidiary", *COMPANY_ROLES):
                    subsidiaries.setdefault(normalize_key(party.organization), (party.organization, source))

        date = _iso_date(record.effective_date)
        if _mentions(record, "conversion"):
            builder.add("Entity History", f"Entity conversion: {_label(record)}", source, date=date)
        elif _mentions(record, "merger"):
            builder.add("Entity History", f"Merger: {_label(record)}", source, date=date)
        elif _mentions(record, "spinout", "spin-off"):
            builder.add("Entity History", f"Spinout: {_label(record)}", source, date=date)

    for company in context.company_names:
        if company.strip():
            entities.setdefault(normalize_key(company), (company, "Configuration"))

    ordered = list(entities.items())
    if ordered:
        _, (parent, source) = ordered[0]
        builder.add("Parent Company", parent, source)
        builder.quick_fact(f"Primary Entity: {parent}", "Formation documents")
        for key, (name, source) in ordered[1:]:
            if key not in subsidiaries:
                builder.add("Related Entities", name, source)
    for key, (name, source) in subsidiaries.items():
        if not ordered or key != ordered[0][0]:
            builder.add("Subsidiaries", name, source)
    return builder.build()


def generate_key_dates_timeline(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Key Dates Timeline",
        ("Formation Dates", "Contract Dates", "Expiration Dates", "Renewal Dates"),
        context,
    )
    contract_dates: List[Tuple[str, str, str]] = []
    expirations: List[Tuple[str, str, str]] = []
    today = context.now.date().isoformat()

    for record in records:
        source = _source(record)
        effective = _iso_date(record.effective_date)
        if effective and _mentions(record, "formation", "incorporation"):
            builder.add("Formation Dates", record.document_type or "Formation", source, date=effective)
        if effective:
            contract_dates.append((effective, _label(record), source))

        expiration = None if is_open_ended(record.expiration_date) else _iso_date(record.expiration_date)
        if expiration:
            expirations.append((expiration, f"{_label(record)} expires", source))
            if record.renewal_terms:
                builder.add(
                    "Renewal Dates",
                    f"{_label(record)} renewal: {record.renewal_terms}",
                    source,
                    date=expiration,
                )

    # Stable sort keeps path order for documents sharing a date.
    for date, fact, source in sorted(contract_dates, key=lambda item: item[0]):
        builder.add("Contract Dates", fact, source, date=date)
    for date, fact, source in sorted(expirations, key=lambda item: item[0]):
        builder.add("Expiration Dates", fact, source, date=date)

    upcoming = [item for item in sorted(expirations, key=lambda item: item[0]) if item[0] >= today]
    if upcoming:
        date, fact, source = upcoming[0]
        builder.quick_fact(f"Next expiration: {fact} on {date}", source)
    if contract_dates:
        date, fact, source = min(contract_dates, key=lambda item: item[0])
        builder.quick_fact(f"Earliest dated document: {fact} on {date}", source)
    return builder.build()


def _first_external_signer(record: DocumentMetadataRecord, context: ExtractionContext) -> str:
    for signer in record.signers:
        if not is_own_company(signer.name, record, context):
            return signer.name
    return UNKNOWN_PARTY


def generate_equity_and_options(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Equity and Options",
        ("Stock Grants", "Option Grants", "Vesting Schedules", "Equity Plan Details"),
        context,
    )

    for record in records:
        source = _source(record)
        grantee = _first_external_signer(record, context)
        date = _iso_date(record.effective_date)

        if _mentions(record, "equity compensation plan", "equity incentive plan", "stock plan"):
            builder.add("Equity Plan Details", record.document_type or "Equity Compensation Plan", source, date=date)
        elif _mentions(record, "stock option", "option grant", "option agreement"):
            builder.add("Option Grants", f"Option grant to {grantee}", source, date=date)
        elif _mentions(record, "restricted stock"):
            builder.add(
                "Stock Grants",
                f"Stock grant to {grantee}",
                source,
                value=display_value(record.contract_value),
                date=date,
            )
        else:
            continue

        for key, value in _fact_items(record.critical_facts, lambda k: "vesting" in k or "cliff" in k):
            builder.add("Vesting Schedules", f"{grantee} - {humanize_key(key)}: {_format_fact(value)}", source)

    if builder.count("Option Grants"):
        builder.quick_fact(f"Option grants: {builder.count('Option Grants')}", "Equity documents")
    if builder.count("Stock Grants"):
        builder.quick_fact(f"Stock grants: {builder.count('Stock Grants')}", "Equity documents")
    return builder.build()


def generate_intellectual_property(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Intellectual Property",
        ("IP Assignments", "Confidentiality Agreements", "Technology Licenses", "Trademarks and Patents"),
        context,
    )
    assignors = set()

    for record in records:
        source = _source(record)
        date = _iso_date(record.effective_date)

        if _mentions(record, "ip assignment", "invention assignment", "piia"):
            assignor = _first_external_signer(record, context)
            assignors.add(normalize_key(assignor))
            builder.add("IP Assignments", f"IP assignment from {assignor}", source, date=date)

        if _mentions(record, "confidentiality", "non-disclosure", "nondisclosure") or _mentions_word(
            record, "NDA"
        ):
            builder.add(
                "Confidentiality Agreements",
                f"{record.document_type or 'Confidentiality Agreement'} with {counterparty_name(record, context)}",
                source,
            )

        if _mentions(record, "license"):
            licensor = counterparty_name(record, context, ("Licensor", "Licensee") + COUNTERPARTY_ROLES)
            builder.add("Technology Licenses", f"{_label(record)} with {licensor}", source, date=date)

        if _mentions(record, "trademark", "patent"):
            builder.add("Trademarks and Patents", _label(record), source, date=date)

    builder.quick_fact(f"Total IP assignments: {len(assignors)}", "IP assignment documents")
    return builder.build()


def generate_compliance_and_risk(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Compliance and Risk",
        ("Regulatory Filings", "Compliance Requirements", "Insurance Policies", "Risk Factors"),
        context,
    )

    for record in records:
        source = _source(record)
        date = _iso_date(record.effective_date or record.fully_executed_date)

        if _in_topic(record, "Risk_and_Compliance"):
            builder.add("Compliance Requirements", _label(record), source, date=date)
        if _mentions(record, "annual report", "filing", "registration", "franchise tax", "83(b)", "form d"):
            builder.add("Regulatory Filings", _label(record), source, date=date)
        if _mentions(record, "insurance"):
            builder.add(
                "Insurance Policies",
                _label(record),
                source,
                value=display_value(record.critical_facts.get("coverage_amount")),
            )
        for term in record.key_terms:
            if _text_mentions(term, "indemnif", "liability", "warranty", "non-compete"):
                builder.add("Risk Factors", f"{counterparty_name(record, context)}: {term}", source)

    return builder.build()


def generate_contracts_summary(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Contracts Summary",
        (
            "Active Contracts",
            "Expiring Soon",
            "Auto-Renewal Contracts",
            "High-Value Contracts",
            "Contract Business Context",
            "Key Contract Provisions",
            "Contract Obligations Summary",
        ),
        context,
    )
    today = context.now.date()
    horizon = today + timedelta(days=EXPIRING_WINDOW_DAYS)
    by_category: Counter[str] = Counter()
    executed = 0

    for record in records:
        by_category[record.category] += 1
        if record.status not in (ExecutionStatus.EXECUTED, ExecutionStatus.PARTIALLY_EXECUTED):
            continue
        executed += 1
        source = _source(record)
        counterparty = counterparty_name(record, context)
        label = _label(record)
        value = display_value(record.contract_value)

        builder.add(
            "Active Contracts",
            f"{label} - {counterparty}",
            source,
            date=_iso_date(record.effective_date),
            value=value,
        )

        if parse_monetary_value(record.contract_value) >= HIGH_VALUE_THRESHOLD:
            builder.add("High-Value Contracts", f"{label} with {counterparty}", source, value=value)

        expiration = None if is_open_ended(record.expiration_date) else parse_date(record.expiration_date)
        if expiration is not None and today <= expiration <= horizon:
            builder.add(
                "Expiring Soon",
                f"{label} with {counterparty}",
                source,
                date=expiration.isoformat(),
            )

        if _text_mentions(record.renewal_terms, "automatic", "auto-renew", "auto renew"):
            builder.add(
                "Auto-Renewal Contracts",
                f"{label} with {counterparty}: {record.renewal_terms}",
                source,
            )

        if record.business_context:
            builder.add(
                "Contract Business Context",
                f"{counterparty} - {record.document_type or 'Agreement'}: {record.business_context}",
                source,
            )
        if record.key_terms:
            builder.add(
                "Key Contract Provisions",
                f"{counterparty} - {record.document_type or 'Agreement'}: {'; '.join(record.key_terms[:3])}",
                source,
            )
        if record.obligations:
            builder.add(
                "Contract Obligations Summary",
                f"{counterparty} - {len(record.obligations)} obligations",
                source,
            )

    for category, count in sorted(by_category.items(), key=lambda item: (-item[1], item[0]))[:3]:
        builder.quick_fact(f"{category}: {count} contracts", "Contract analysis")
    builder.quick_fact(f"Total contracts: {len(records)}", "All documents")
    builder.quick_fact(f"Executed contracts: {executed}", "All documents")
    expiring = builder.count("Expiring Soon")
    if expiring:
        builder.quick_fact(
            f"Contracts expiring within {EXPIRING_WINDOW_DAYS} days: {expiring}", "Contract analysis"
        )
    return builder.build()


def generate_templates_inventory(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Templates Inventory",
        ("Employment Templates", "Agreement Templates", "NDA Templates", "Other Templates"),
        context,
    )
    templates = 0

    for record in records:
        if record.status is not ExecutionStatus.TEMPLATE:
            continue
        templates += 1
        if _mentions(record, "employment", "offer letter"):
            section = "Employment Templates"
        elif _mentions(record, "confidentiality") or _mentions_word(record, "NDA"):
            section = "NDA Templates"
        elif _mentions(record, "agreement"):
            section = "Agreement Templates"
        else:
            section = "Other Templates"
        builder.add(section, _label(record), _source(record), metadata=dict(record.template_analysis))

    builder.quick_fact(f"Total templates available: {templates}", "Template documents")
    return builder.build()


def generate_document_index(
    records: Sequence[DocumentMetadataRecord], context: ExtractionContext
) -> MemoryCategory:
    builder = CategoryBuilder(
        "Document Index",
        ("By Status", "By Category", "Recent Documents", "Document Stats"),
        context,
    )
    statuses: Counter[str] = Counter(record.status.value for record in records)
    categories: Counter[str] = Counter(record.category for record in records)

    for status, count in sorted(statuses.items(), key=lambda item: (-item[1], item[0])):
        builder.add("By Status", f"{status}: {count} documents", "Document analysis")
    for category, count in sorted(categories.items(), key=lambda item: (-item[1], item[0])):
        builder.add("By Category", f"{category}: {count} documents", "Document analysis")

    dated = [record for record in records if record.document_date is not None]
    dated.sort(key=lambda record: record.document_date, reverse=True)
    for record in dated[:10]:
        builder.add(
            "Recent Documents",
            _label(record),
            _source(record),
            date=record.document_date.isoformat(),
            key=str(record.path),
        )

    with_esign = sum(1 for record in records if record.esign is not None)
    if with_esign:
        builder.add("Document Stats", f"Documents with e-signature references: {with_esign}", "Document analysis")
    signed = sum(1 for record in records if record.signers)
    builder.add("Document Stats", f"Documents with signers: {signed}", "Document analysis")

    builder.quick_fact(f"Total documents: {len(records)}", "All documents")
    return builder.build()


# Category file stem -> extractor, in generation order.
EXTRACTORS: Dict[str, Callable[[Sequence[DocumentMetadataRecord], ExtractionContext], MemoryCategory]] = {
    "company_info": generate_company_info,
    "people_directory": generate_people_directory,
    "financial_summary": generate_financial_summary,
    "revenue_and_sales": generate_revenue_and_sales,
    "partnerships_and_channels": generate_partnerships_and_channels,
    "investors_and_cap_table": generate_investors_and_cap_table,
    "vendors_and_suppliers": generate_vendors_and_suppliers,
    "legal_entities": generate_legal_entities,
    "key_dates_timeline": generate_key_dates_timeline,
    "equity_and_options": generate_equity_and_options,
    "intellectual_property": generate_intellectual_property,
    "compliance_and_risk": generate_compliance_and_risk,
    "contracts_summary": generate_contracts_summary,
    "templates_inventory": generate_templates_inventory,
    "document_index": generate_document_index,
}
