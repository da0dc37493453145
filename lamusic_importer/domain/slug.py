from __future__ import annotations

import re
import unicodedata


SLUG_MAX_LENGTH = 100
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def generate_slug(name: str | None, *, fallback: str = "produto") -> str:
    normalized = unicodedata.normalize("NFKD", str(name or ""))
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii").lower()
    slug = _NON_ALNUM.sub("-", ascii_only).strip("-")
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    return slug or fallback


def with_suffix(slug: str, attempt: int) -> str:
    if attempt <= 0:
        return slug
    return f"{slug}-{attempt}"
