from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List


@dataclass(frozen=True)
class GenerationOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None


@dataclass(frozen=True)
class AiResult:
    success: bool
    text: str | None = None
    error: str | None = None
    tokens_used: int = 0
    elapsed_ms: int = 0


@dataclass(frozen=True)
class ExtractedSupplier:
    name: str
    tax_id: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    phone: str | None = None
    email: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ExtractedSupplier":
        data = payload.get("supplier") if isinstance(payload, dict) and isinstance(payload.get("supplier"), dict) else payload
        if not isinstance(data, dict):
            data = {}
        return cls(
            name=_text(data.get("name")) or "",
            tax_id=_text(data.get("cnpj") or data.get("taxId") or data.get("tax_id")) or "",
            address=_text(data.get("address")),
            city=_text(data.get("city")),
            state=_text(data.get("state")),
            zip_code=_text(data.get("zipCode") or data.get("zip_code")),
            phone=_text(data.get("phone")),
            email=_text(data.get("email")),
        )


@dataclass(frozen=True)
class ExtractedLineItem:
    name: str
    quantity: int
    unit_price: str
    total_price: str
    sku: str | None = None
    description: str | None = None
    brand: str | None = None
    ncm: str | None = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ExtractedLineItem":
        quantity = _as_quantity(data.get("quantity"))
        unit_price = _as_decimal_text(data.get("unitPrice", data.get("unit_price")))
        total_price = _as_decimal_text(data.get("totalPrice", data.get("total_price")))
        if total_price == "0.00" and unit_price != "0.00" and quantity:
            total_price = str((Decimal(unit_price) * quantity).quantize(Decimal("0.01")))
        return cls(
            name=_text(data.get("name")) or "",
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
            sku=_text(data.get("sku")),
            description=_text(data.get("description")),
            brand=_text(data.get("brand")),
            ncm=_text(data.get("ncm")),
        )


def line_items_from_payload(payload: Any) -> List[ExtractedLineItem]:
    if isinstance(payload, dict):
        payload = payload.get("products", payload.get("items", []))
    if not isinstance(payload, list):
        return []
    items = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        item = ExtractedLineItem.from_payload(entry)
        if item.name:
            items.append(item)
    return items


@dataclass(frozen=True)
class ProductCreateInput:
    name: str
    price: str
    stock_quantity: int
    sku: str | None = None
    description: str | None = None
    status: str = "active"
    featured: bool = False
    category_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProductEnrichment:
    description: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None

    def as_patch(self) -> Dict[str, str]:
        patch = {}
        if self.description:
            patch["description"] = self.description
        if self.meta_title:
            patch["meta_title"] = self.meta_title
        if self.meta_description:
            patch["meta_description"] = self.meta_description
        return patch


@dataclass
class ImportSummary:
    supplier: Dict[str, Any]
    processed_products: List[Dict[str, Any]]
    available_categories_count: int
    created_count: int = 0
    restocked_count: int = 0
    categorized_count: int = 0
    enriched_count: int = 0
    total_value: str = "0.00"
    category_names: List[str] = field(default_factory=list)
    imported_at: str | None = None
    warnings: List[str] = field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return len(self.processed_products)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "message": "NFE processed successfully within a transaction.",
            "supplier": self.supplier,
            "processedProducts": self.processed_products,
            "processedCount": self.processed_count,
            "availableCategoriesCount": self.available_categories_count,
            "createdCount": self.created_count,
            "restockedCount": self.restocked_count,
            "categorizedCount": self.categorized_count,
            "enrichedCount": self.enriched_count,
            "totalValue": self.total_value,
            "categoryNames": list(self.category_names),
            "importedAt": self.imported_at,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ImportSummary":
        """Rebuild a summary from the camelCase import response."""
        products = _as_list(payload.get("processedProducts"))
        supplier = payload.get("supplier") if isinstance(payload.get("supplier"), dict) else {}
        return cls(
            supplier=supplier,
            processed_products=[item for item in products if isinstance(item, dict)],
            available_categories_count=_as_quantity(payload.get("availableCategoriesCount")),
            created_count=_as_quantity(payload.get("createdCount")),
            restocked_count=_as_quantity(payload.get("restockedCount")),
            categorized_count=_as_quantity(payload.get("categorizedCount")),
            enriched_count=_as_quantity(payload.get("enrichedCount")),
            total_value=_as_decimal_text(payload.get("totalValue")),
            category_names=[str(name) for name in _as_list(payload.get("categoryNames")) if _text(name)],
            imported_at=_text(payload.get("importedAt")),
            warnings=[str(warning) for warning in _as_list(payload.get("warnings"))],
        )


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none"}:
        return None
    return text


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _as_quantity(value: Any) -> int:
    try:
        quantity = int(Decimal(str(value).replace(",", ".")))
    except (InvalidOperation, OverflowError, TypeError, ValueError):
        return 0
    return max(0, quantity)


def _as_decimal_text(value: Any) -> str:
    raw = str(value if value is not None else "").strip()
    if "," in raw and "." in raw:
        raw = raw.replace(".", "").replace(",", ".")
    elif "," in raw:
        raw = raw.replace(",", ".")
    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        return "0.00"
    if not amount.is_finite():
        return "0.00"
    if amount < 0:
        amount = Decimal("0")
    return str(amount.quantize(Decimal("0.01")))
