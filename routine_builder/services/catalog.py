from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from routine_builder.models import Catalog, Product


class CatalogUnavailable(Exception):
    pass


def load_catalog(path: Path) -> list[Product]:
    # Read on every call; the file is small and may be swapped while running.
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogUnavailable(f"cannot read catalog at {path}") from exc

    try:
        return Catalog.model_validate(json.loads(raw)).products
    except (ValueError, ValidationError) as exc:
        raise CatalogUnavailable(f"malformed catalog at {path}") from exc


def filter_products(
    products: Sequence[Product],
    *,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> list[Product]:
    filtered = list(products)
    if category:
        filtered = [p for p in filtered if p.category == category]

    term = (search or "").strip().lower()
    if term:
        filtered = [
            p
            for p in filtered
            if term in p.name.lower() or term in p.brand.lower() or term in p.description.lower()
        ]
    return filtered


def same_id(a: Any, b: Any) -> bool:
    return str(a).strip() == str(b).strip()


def find_product(products: Sequence[Product], product_id: Any) -> Optional[Product]:
    for product in products:
        if same_id(product.id, product_id):
            return product
    return None


def list_categories(products: Sequence[Product]) -> list[str]:
    seen: list[str] = []
    for product in products:
        if product.category and product.category not in seen:
            seen.append(product.category)
    return seen
