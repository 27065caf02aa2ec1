"""
Goods-introduction document model and its JSON wire form.

Wire names are snake_case except `importRequest` on the document and
`participantInn` on the description. Every field is emitted, absent ones
as null. Dates are rendered as YYYY-MM-DD.
"""
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from crpt_tools.errors import EncodingError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _format_date(value: Optional[date], name: str) -> Optional[str]:
    """Render a date as YYYY-MM-DD (aware datetimes are taken in UTC)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    if not isinstance(value, date):
        raise EncodingError(
            f"Field '{name}' must be a date, got {type(value).__name__}",
            {"field": name},
        )
    return value.isoformat()


def _parse_date(value: Any, name: str) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise EncodingError(
            f"Field '{name}' must be a YYYY-MM-DD string, got {value!r}",
            {"field": name},
        )
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise EncodingError(f"Field '{name}': {e}", {"field": name}) from e


def _parse_bool(value: Any, name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise EncodingError(
            f"Field '{name}' must be true, false or null, got {value!r}",
            {"field": name},
        )
    return value


@dataclass(frozen=True)
class Description:
    participant_inn: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"participantInn": self.participant_inn}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Description":
        return cls(participant_inn=data.get("participantInn"))


@dataclass(frozen=True)
class Product:
    certificate_document: Optional[str] = None
    certificate_document_date: Optional[date] = None
    certificate_document_number: Optional[str] = None
    owner_inn: Optional[str] = None
    producer_inn: Optional[str] = None
    production_date: Optional[date] = None
    tnved_code: Optional[str] = None
    uit_code: Optional[str] = None
    uitu_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "certificate_document": self.certificate_document,
            "certificate_document_date": _format_date(
                self.certificate_document_date, "certificate_document_date"
            ),
            "certificate_document_number": self.certificate_document_number,
            "owner_inn": self.owner_inn,
            "producer_inn": self.producer_inn,
            "production_date": _format_date(self.production_date, "production_date"),
            "tnved_code": self.tnved_code,
            "uit_code": self.uit_code,
            "uitu_code": self.uitu_code,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Product":
        return cls(
            certificate_document=data.get("certificate_document"),
            certificate_document_date=_parse_date(
                data.get("certificate_document_date"), "certificate_document_date"
            ),
            certificate_document_number=data.get("certificate_document_number"),
            owner_inn=data.get("owner_inn"),
            producer_inn=data.get("producer_inn"),
            production_date=_parse_date(data.get("production_date"), "production_date"),
            tnved_code=data.get("tnved_code"),
            uit_code=data.get("uit_code"),
            uitu_code=data.get("uitu_code"),
        )


@dataclass(frozen=True)
class Document:
    """A goods-introduction registration record."""
    description: Optional[Description] = None
    doc_id: Optional[str] = None
    doc_status: Optional[str] = None
    doc_type: Optional[str] = None
    import_request: bool = False
    owner_inn: Optional[str] = None
    participant_inn: Optional[str] = None
    producer_inn: Optional[str] = None
    production_date: Optional[date] = None
    production_type: Optional[str] = None
    products: Tuple[Product, ...] = field(default_factory=tuple)
    reg_date: Optional[date] = None
    reg_number: Optional[str] = None

    def __post_init__(self):
        # Lists handed in by callers are frozen so the document can't change after handoff
        if not isinstance(self.products, tuple):
            object.__setattr__(self, "products", tuple(self.products or ()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description.to_dict() if self.description else None,
            "doc_id": self.doc_id,
            "doc_status": self.doc_status,
            "doc_type": self.doc_type,
            "importRequest": self.import_request,
            "owner_inn": self.owner_inn,
            "participant_inn": self.participant_inn,
            "producer_inn": self.producer_inn,
            "production_date": _format_date(self.production_date, "production_date"),
            "production_type": self.production_type,
            "products": [p.to_dict() for p in self.products],
            "reg_date": _format_date(self.reg_date, "reg_date"),
            "reg_number": self.reg_number,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Document":
        """Build a Document from its wire-named mapping. Unknown keys are ignored."""
        description = data.get("description")
        return cls(
            description=Description.from_dict(description) if description else None,
            doc_id=data.get("doc_id"),
            doc_status=data.get("doc_status"),
            doc_type=data.get("doc_type"),
            import_request=_parse_bool(data.get("importRequest"), "importRequest"),
            owner_inn=data.get("owner_inn"),
            participant_inn=data.get("participant_inn"),
            producer_inn=data.get("producer_inn"),
            production_date=_parse_date(data.get("production_date"), "production_date"),
            production_type=data.get("production_type"),
            products=tuple(Product.from_dict(p) for p in data.get("products") or ()),
            reg_date=_parse_date(data.get("reg_date"), "reg_date"),
            reg_number=data.get("reg_number"),
        )


def encode_document(document: Document) -> bytes:
    """Serialize a document to UTF-8 JSON bytes. Raises EncodingError."""
    if not isinstance(document, Document):
        raise EncodingError(f"Expected a Document, got {type(document).__name__}")
    try:
        # Nested records that are not Description/Product have no to_dict()
        payload = document.to_dict()
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except (AttributeError, TypeError, ValueError) as e:
        raise EncodingError(f"Document is not JSON serializable: {e}") from e
