from __future__ import annotations

from typing import Iterable, List

from lamusic_importer.domain.slug import generate_slug
from lamusic_importer.errors import (
    CategoryCycleError,
    CategoryHasChildrenError,
    DuplicateSlugError,
    NotFoundError,
    ValidationError,
)
from lamusic_importer.infrastructure.repositories import CategoryRepository


def _name_key(value: str | None) -> str:
    return " ".join(str(value or "").split()).casefold()


class CategoryService:
    """Read side of the taxonomy plus hierarchy rules. Imports never create categories."""

    def __init__(self, repository: CategoryRepository | None = None) -> None:
        self.repository = repository or CategoryRepository()

    def list_active(self, db) -> List[dict]:
        return self.repository.list_active(db)

    def find_by_name(self, db, name: str | None, categories: Iterable[dict] | None = None) -> dict | None:
        wanted = _name_key(name)
        if not wanted:
            return None
        pool = self.list_active(db) if categories is None else categories
        for category in pool:
            if category.get("deleted_at") or not category.get("is_active", True):
                continue
            if _name_key(category.get("name")) == wanted:
                return category
        return None

    def get(self, db, category_id: str) -> dict:
        category = self.repository.get_by_id(db, category_id)
        if category is None:
            raise NotFoundError(message_key="category_not_found", details=f"Categoria {category_id} nao encontrada.")
        return category

    def create(
        self,
        db,
        name: str,
        *,
        description: str | None = None,
        parent_id: str | None = None,
        sort_order: int = 0,
        is_active: bool = True,
    ) -> dict:
        clean_name = str(name or "").strip()
        if not clean_name:
            raise ValidationError(details="Nome da categoria e obrigatorio.")
        slug = generate_slug(clean_name, fallback="categoria")
        if self.repository.find_by_slug(db, slug, include_deleted=True) is not None:
            raise DuplicateSlugError(details=f"Slug {slug} ja utilizado.")
        if parent_id:
            self.get(db, parent_id)
        category_id = self.repository.create(
            db,
            name=clean_name,
            slug=slug,
            description=description,
            parent_id=parent_id or None,
            sort_order=sort_order,
            is_active=is_active,
        )
        return self.get(db, category_id)

    def get_children(self, db, category_id: str, *, active_only: bool = False) -> List[dict]:
        return self.repository.list_children(db, category_id, active_only=active_only)

    def get_parent(self, db, category_id: str) -> dict | None:
        category = self.get(db, category_id)
        if not category.get("parent_id"):
            return None
        return self.repository.get_by_id(db, category["parent_id"])

    def ancestors(self, db, category_id: str) -> List[dict]:
        """Parent chain of the category, nearest first."""
        chain: List[dict] = []
        seen = {category_id}
        parent_id = self.get(db, category_id).get("parent_id")
        while parent_id and parent_id not in seen:
            parent = self.repository.get_by_id(db, parent_id)
            if parent is None:
                break
            chain.append(parent)
            seen.add(parent_id)
            parent_id = parent.get("parent_id")
        return chain

    def would_create_cycle(self, db, category_id: str, new_parent_id: str | None) -> bool:
        if not new_parent_id:
            return False
        if new_parent_id == category_id:
            return True
        seen = set()
        current_id = new_parent_id
        while current_id and current_id not in seen:
            if current_id == category_id:
                return True
            seen.add(current_id)
            row = self.repository.get_by_id(db, current_id)
            current_id = row.get("parent_id") if row else None
        return False

    def change_parent(self, db, category_id: str, new_parent_id: str | None) -> dict:
        self.get(db, category_id)
        if new_parent_id:
            self.get(db, new_parent_id)
        if self.would_create_cycle(db, category_id, new_parent_id):
            raise CategoryCycleError(details=f"Categoria {new_parent_id} descende de {category_id}.")
        self.repository.set_parent(db, category_id, new_parent_id or None)
        return self.get(db, category_id)

    def level_of(self, db, category_id: str) -> int:
        return len(self.ancestors(db, category_id))

    def path_of(self, db, category_id: str, *, separator: str = " > ") -> str:
        category = self.get(db, category_id)
        names = [row["name"] for row in reversed(self.ancestors(db, category_id))]
        names.append(category["name"])
        return separator.join(names)

    def remove(self, db, category_id: str) -> None:
        self.get(db, category_id)
        if self.get_children(db, category_id):
            raise CategoryHasChildrenError(details=f"Categoria {category_id} possui subcategorias.")
        self.repository.soft_delete(db, category_id)
