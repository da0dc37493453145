from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from lamusic_importer.domain.contracts import ProductCreateInput
from lamusic_importer.domain.slug import SLUG_MAX_LENGTH, generate_slug, with_suffix
from lamusic_importer.errors import DuplicateSkuError, NotFoundError, ValidationError
from lamusic_importer.infrastructure.repositories import CategoryRepository, ProductLogRepository, ProductRepository
from lamusic_importer.infrastructure.repositories.product_repository import PRODUCT_UPDATABLE_FIELDS
from lamusic_importer.ui_strings import product_log_action_label


logger = logging.getLogger(__name__)

PRODUCT_STATUSES = ("draft", "active", "inactive")
STOCK_MODES = ("increment", "decrement", "set")
META_TITLE_MAX_LENGTH = 255
_MONEY_FIELDS = ("price", "compare_price", "cost_price")


def sanitize_meta_title(value: Any) -> str | None:
    text = str(value or "").replace("*", "").replace("#", "").strip()
    if not text:
        return None
    first_line = text.splitlines()[0].strip()
    return first_line[:META_TITLE_MAX_LENGTH].strip() or None


def _money(value: Any, field: str) -> str:
    try:
        amount = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError):
        raise ValidationError(details=f"Valor invalido para {field}: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError(details=f"Valor invalido para {field}: {value!r}")
    return str(amount.quantize(Decimal("0.01")))


def _quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message_key="quantity_invalid", details=f"Quantidade invalida: {value!r}") from None
    if quantity < 0:
        raise ValidationError(message_key="quantity_invalid", details=f"Quantidade negativa: {quantity}")
    return quantity


def _snapshot(product: Dict[str, Any], fields=PRODUCT_UPDATABLE_FIELDS) -> Dict[str, Any]:
    return {field: product.get(field) for field in fields if field in product}


class ProductService:
    """Product writes. Every mutation appends exactly one audit log row."""

    def __init__(
        self,
        repository: ProductRepository | None = None,
        log_repository: ProductLogRepository | None = None,
        category_repository: CategoryRepository | None = None,
    ) -> None:
        self.repository = repository or ProductRepository()
        self.log_repository = log_repository or ProductLogRepository()
        self.category_repository = category_repository or CategoryRepository()

    def find_by_sku(self, db, sku: str | None) -> dict | None:
        clean_sku = str(sku or "").strip()
        if not clean_sku:
            return None
        return self.repository.find_by_sku(db, clean_sku)

    def get(self, db, product_id: str) -> dict:
        product = self.repository.get_by_id(db, product_id)
        if product is None:
            raise NotFoundError(message_key="product_not_found", details=f"Produto {product_id} nao encontrado.")
        return product

    def unique_slug(self, db, name: str | None) -> str:
        base = generate_slug(name)
        candidate = base
        attempt = 0
        while self.repository.slug_exists(db, candidate):
            attempt += 1
            suffix_length = len(str(attempt)) + 1
            candidate = with_suffix(base[: SLUG_MAX_LENGTH - suffix_length].rstrip("-") or "produto", attempt)
        return candidate

    def create(self, db, data: ProductCreateInput, actor_id: str | None) -> dict:
        name = str(data.name or "").strip()
        if not name:
            raise ValidationError(details="Nome do produto e obrigatorio.")
        status = str(data.status or "active").strip()
        if status not in PRODUCT_STATUSES:
            raise ValidationError(details=f"Status de produto invalido: {status}")
        price = _money(data.price, "price")
        stock_quantity = _quantity(data.stock_quantity)

        sku = str(data.sku or "").strip() or None
        if sku and self.repository.find_by_sku(db, sku) is not None:
            raise DuplicateSkuError(details=f"SKU {sku} ja cadastrado.")

        slug = self.unique_slug(db, name)
        product_id = self.repository.create(
            db,
            name=name,
            slug=slug,
            price=price,
            stock_quantity=stock_quantity,
            sku=sku,
            description=str(data.description or "").strip() or None,
            status=status,
            featured=bool(data.featured),
        )
        for category_id in data.category_ids:
            self.associate_category(db, product_id, category_id)

        product = self.get(db, product_id)
        self.log_repository.append(
            db,
            product_id=product_id,
            action="created",
            responsible_user_id=actor_id,
            new_values=_snapshot(product),
        )
        logger.info("product_created", extra={"product_id": product_id, "sku": sku, "slug": slug})
        return product

    def _normalize_patch(self, db, current: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(set(patch) - set(PRODUCT_UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(details=f"Campos nao permitidos: {', '.join(unknown)}")

        fields: Dict[str, Any] = {}
        for key, value in patch.items():
            if key == "name":
                value = str(value or "").strip()
                if not value:
                    raise ValidationError(details="Nome do produto e obrigatorio.")
            elif key == "slug":
                value = generate_slug(value)
                if value != current.get("slug") and self.repository.slug_exists(db, value):
                    value = self.unique_slug(db, value)
            elif key == "sku":
                value = str(value or "").strip() or None
                if value and value != current.get("sku"):
                    holder = self.repository.find_by_sku(db, value)
                    if holder is not None and holder["id"] != current["id"]:
                        raise DuplicateSkuError(details=f"SKU {value} ja cadastrado.")
            elif key in _MONEY_FIELDS:
                value = None if value in (None, "") and key != "price" else _money(value, key)
            elif key in ("stock_quantity", "min_stock_alert"):
                value = _quantity(value)
            elif key == "status":
                value = str(value or "").strip()
                if value not in PRODUCT_STATUSES:
                    raise ValidationError(details=f"Status de produto invalido: {value}")
            elif key == "featured":
                value = bool(value)
            elif key == "meta_title":
                value = sanitize_meta_title(value)
            else:
                value = str(value).strip() if value is not None else None
                value = value or None
            fields[key] = value
        return {key: value for key, value in fields.items() if current.get(key) != value}

    def update(self, db, product_id: str, patch: Dict[str, Any], actor_id: str | None) -> dict:
        current = self.get(db, product_id)
        changes = self._normalize_patch(db, current, dict(patch or {}))
        if not changes:
            return current

        self.repository.update(db, product_id, changes)
        updated = self.get(db, product_id)
        self.log_repository.append(
            db,
            product_id=product_id,
            action="updated",
            responsible_user_id=actor_id,
            old_values=_snapshot(current, changes.keys()),
            new_values=_snapshot(updated, changes.keys()),
        )
        return updated

    def remove(self, db, product_id: str, actor_id: str | None) -> None:
        current = self.get(db, product_id)
        self.repository.soft_delete(db, product_id)
        self.log_repository.append(
            db,
            product_id=product_id,
            action="deleted",
            responsible_user_id=actor_id,
            old_values=_snapshot(current),
        )

    def update_stock(
        self,
        db,
        product_id: str,
        amount: int,
        mode: str = "increment",
        actor_id: str | None = None,
    ) -> dict:
        if mode not in STOCK_MODES:
            raise ValidationError(message_key="stock_mode_invalid", details=f"Modo de estoque invalido: {mode}")
        quantity = _quantity(amount)
        current = self.get(db, product_id)
        previous = int(current["stock_quantity"])
        if mode == "increment":
            new_quantity = previous + quantity
        elif mode == "decrement":
            new_quantity = max(0, previous - quantity)
        else:
            new_quantity = quantity

        self.repository.update(db, product_id, {"stock_quantity": new_quantity})
        updated = self.get(db, product_id)
        self.log_repository.append(
            db,
            product_id=product_id,
            action="stock_changed",
            responsible_user_id=actor_id,
            old_values={"stock_quantity": previous},
            new_values={"stock_quantity": new_quantity, "mode": mode, "amount": quantity},
        )
        return updated

    def associate_category(self, db, product_id: str, category_id: str) -> None:
        if self.repository.get_by_id(db, product_id) is None:
            raise NotFoundError(message_key="product_not_found", details=f"Produto {product_id} nao encontrado.")
        if self.category_repository.get_by_id(db, category_id) is None:
            raise NotFoundError(message_key="category_not_found", details=f"Categoria {category_id} nao encontrada.")
        self.repository.associate_category(db, product_id, category_id)

    def category_ids(self, db, product_id: str) -> List[str]:
        return self.repository.list_category_ids(db, product_id)

    def list_logs(self, db, product_id: str) -> List[dict]:
        if self.repository.get_by_id(db, product_id, include_deleted=True) is None:
            raise NotFoundError(message_key="product_not_found", details=f"Produto {product_id} nao encontrado.")
        logs = self.log_repository.list_by_product(db, product_id)
        for entry in logs:
            entry["action_label"] = product_log_action_label(entry["action"])
        return logs
