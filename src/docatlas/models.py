"""Core DocAtlas data models.

A :class:`DocumentMetadataRecord` mirrors one JSON sidecar written next to an
organized document. Sidecars are produced by an external extractor, so every
field is coerced on read instead of trusted.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from docatlas.utils.dates import parse_date

FactValue = Union[str, int, float, bool]

CATEGORY_TAXONOMY = (
    "Corporate_and_Governance",
    "People_and_Employment",
    "Finance_and_Investment",
    "Sales_and_Revenue",
    "Operations_and_Vendors",
    "Technology_and_IP",
    "Marketing_and_Partnerships",
    "Risk_and_Compliance",
    "Templates",
    "Archive",
    "Other",
)
DEFAULT_CATEGORY = "Other"


class ExecutionStatus(str, Enum):
    NOT_EXECUTED = "not_executed"
    PARTIALLY_EXECUTED = "partially_executed"
    EXECUTED = "executed"
    TEMPLATE = "template"

    @classmethod
    def coerce(cls, value: Any) -> "ExecutionStatus":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        for member in cls:
            if member.value == text:
                return member
        return cls.NOT_EXECUTED


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def coerce_fact_value(value: Any) -> Optional[FactValue]:
    """Reduce an arbitrary JSON value to a scalar, or ``None`` when empty."""
    if value is None:
        return None
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (list, tuple)):
        parts = [str(coerce_fact_value(item)) for item in value if coerce_fact_value(item) is not None]
        return ", ".join(parts) or None
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=True, sort_keys=True)
    return str(value)


def coerce_fact_map(value: Any) -> Dict[str, FactValue]:
    """Build an ordered scalar map from an open-ended JSON object."""
    if not isinstance(value, Mapping):
        return {}
    facts: Dict[str, FactValue] = {}
    for key, raw in value.items():
        scalar = coerce_fact_value(raw)
        if scalar is not None:
            facts[str(key)] = scalar
    return facts


@dataclass(slots=True)
class Signer:
    name: str
    date_signed: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Signer"]:
        if isinstance(data, str):
            return cls(name=data.strip()) if data.strip() else None
        if not isinstance(data, Mapping):
            return None
        name = _opt_str(data.get("name"))
        if not name:
            return None
        return cls(name=name, date_signed=_opt_str(data.get("date_signed")))


@dataclass(slots=True)
class Party:
    name: str
    organization: Optional[str] = None
    title: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Party"]:
        if not isinstance(data, Mapping):
            return None
        name = _opt_str(data.get("name")) or _opt_str(data.get("organization"))
        if not name:
            return None
        return cls(
            name=name,
            organization=_opt_str(data.get("organization")),
            title=_opt_str(data.get("title")),
            address=_opt_str(data.get("address")),
            email=_opt_str(data.get("email")),
            role=_opt_str(data.get("role")),
        )

    def has_role(self, *roles: str) -> bool:
        if not self.role:
            return False
        own = self.role.lower()
        return any(own == role.lower() for role in roles)


@dataclass(slots=True)
class ESignReference:
    """Cross-reference to the external e-signature platform."""

    document_id: Optional[str] = None
    template_id: Optional[str] = None
    template_link: Optional[str] = None
    status: Optional[str] = None
    uploaded_at: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ESignReference"]:
        if not isinstance(data, Mapping):
            return None
        return cls(
            document_id=_opt_str(data.get("document_id")),
            template_id=_opt_str(data.get("template_id")),
            template_link=_opt_str(data.get("template_link")),
            status=_opt_str(data.get("status")),
            uploaded_at=_opt_str(data.get("uploaded_at")),
            error_message=_opt_str(data.get("error_message")),
        )


@dataclass(slots=True)
class DocumentMetadataRecord:
    """Structured metadata for one organized document."""

    path: Path
    filename: str
    status: ExecutionStatus = ExecutionStatus.NOT_EXECUTED
    category: str = DEFAULT_CATEGORY
    signers: List[Signer] = field(default_factory=list)
    fully_executed_date: Optional[str] = None
    document_type: Optional[str] = None
    primary_parties: List[Party] = field(default_factory=list)
    effective_date: Optional[str] = None
    expiration_date: Optional[str] = None
    contract_value: Optional[str] = None
    governing_law: Optional[str] = None
    counterparty_role: Optional[str] = None
    amendment_number: Optional[str] = None
    notice_period: Optional[str] = None
    renewal_terms: Optional[str] = None
    confidentiality_level: Optional[str] = None
    approval_required: Optional[str] = None
    business_context: Optional[str] = None
    key_terms: List[str] = field(default_factory=list)
    obligations: List[str] = field(default_factory=list)
    financial_terms: Dict[str, FactValue] = field(default_factory=dict)
    critical_facts: Dict[str, FactValue] = field(default_factory=dict)
    template_analysis: Dict[str, FactValue] = field(default_factory=dict)
    esign: Optional[ESignReference] = None
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], path: Path) -> "DocumentMetadataRecord":
        path = Path(path)
        signers = [s for s in (Signer.from_dict(item) for item in _as_list(data.get("signers"))) if s]
        parties = [
            p for p in (Party.from_dict(item) for item in _as_list(data.get("primary_parties"))) if p
        ]
        return cls(
            path=path,
            filename=_opt_str(data.get("filename")) or path.name,
            status=ExecutionStatus.coerce(data.get("status")),
            category=_opt_str(data.get("category")) or DEFAULT_CATEGORY,
            signers=signers,
            fully_executed_date=_opt_str(data.get("fully_executed_date")),
            document_type=_opt_str(data.get("document_type")),
            primary_parties=parties,
            effective_date=_opt_str(data.get("effective_date")),
            expiration_date=_opt_str(data.get("expiration_date")),
            contract_value=_opt_str(data.get("contract_value")),
            governing_law=_opt_str(data.get("governing_law")),
            counterparty_role=_opt_str(data.get("counterparty_role")),
            amendment_number=_opt_str(data.get("amendment_number")),
            notice_period=_opt_str(data.get("notice_period")),
            renewal_terms=_opt_str(data.get("renewal_terms")),
            confidentiality_level=_opt_str(data.get("confidentiality_level")),
            approval_required=_opt_str(data.get("approval_required")),
            business_context=_opt_str(data.get("business_context")),
            key_terms=_str_list(data.get("key_terms")),
            obligations=_str_list(data.get("obligations")),
            financial_terms=coerce_fact_map(data.get("financial_terms")),
            critical_facts=coerce_fact_map(data.get("critical_facts")),
            template_analysis=coerce_fact_map(data.get("template_analysis")),
            esign=ESignReference.from_dict(data.get("documenso") or data.get("esign")),
            tags=_str_list(data.get("tags")),
            notes=_opt_str(data.get("notes")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the sidecar JSON shape."""
        data: Dict[str, Any] = {
            "filename": self.filename,
            "status": self.status.value,
            "category": self.category,
            "signers": [{"name": s.name, "date_signed": s.date_signed} for s in self.signers],
            "fully_executed_date": self.fully_executed_date,
        }
        optional: Dict[str, Any] = {
            "document_type": self.document_type,
            "primary_parties": [
                {key: value for key, value in asdict(p).items() if value is not None}
                for p in self.primary_parties
            ],
            "effective_date": self.effective_date,
            "expiration_date": self.expiration_date,
            "contract_value": self.contract_value,
            "governing_law": self.governing_law,
            "counterparty_role": self.counterparty_role,
            "amendment_number": self.amendment_number,
            "notice_period": self.notice_period,
            "renewal_terms": self.renewal_terms,
            "confidentiality_level": self.confidentiality_level,
            "approval_required": self.approval_required,
            "business_context": self.business_context,
            "key_terms": self.key_terms,
            "obligations": self.obligations,
            "financial_terms": self.financial_terms,
            "critical_facts": self.critical_facts,
            "template_analysis": self.template_analysis,
            "tags": self.tags,
            "notes": self.notes,
        }
        for key, value in optional.items():
            if value not in (None, [], {}):
                data[key] = value
        if self.esign is not None:
            data["esign"] = {
                key: value for key, value in asdict(self.esign).items() if value is not None
            }
        return data

    @property
    def document_date(self) -> Optional[date]:
        """Execution date, falling back to the effective date."""
        return parse_date(self.fully_executed_date) or parse_date(self.effective_date)

    def signer_names(self) -> List[str]:
        return [signer.name for signer in self.signers]

    def party_names(self) -> List[str]:
        return [party.name for party in self.primary_parties]


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def party_with_role(record: DocumentMetadataRecord, *roles: str) -> Optional[Party]:
    """Return the first party carrying one of ``roles``."""
    for party in record.primary_parties:
        if party.has_role(*roles):
            return party
    return None


@dataclass(slots=True)
class MemoryFactEntry:
    """One fact in a memory category, with the document(s) it came from."""

    fact: str
    source: str
    date: Optional[str] = None
    value: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class MemoryCategory:
    title: str
    last_updated: datetime
    quick_facts: List[MemoryFactEntry] = field(default_factory=list)
    sections: Dict[str, List[MemoryFactEntry]] = field(default_factory=dict)

    def entries(self, section: str) -> List[MemoryFactEntry]:
        return self.sections.get(section, [])
