from __future__ import annotations

from pathlib import Path
import sys
import tempfile
import unittest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from routine_builder import config
from routine_builder.services.catalog import (
    CatalogUnavailable,
    filter_products,
    find_product,
    list_categories,
    load_catalog,
)


class TestCatalog(unittest.TestCase):
    def setUp(self) -> None:
        self.products = load_catalog(config.CATALOG_PATH)

    def test_bundled_catalog_loads(self) -> None:
        self.assertGreater(len(self.products), 10)
        self.assertTrue(all(p.name and p.category for p in self.products))

    def test_filter_by_category_is_exact(self) -> None:
        cleansers = filter_products(self.products, category="cleanser")
        self.assertTrue(cleansers)
        self.assertTrue(all(p.category == "cleanser" for p in cleansers))
        self.assertEqual(filter_products(self.products, category="Cleanser"), [])

    def test_search_matches_name_brand_or_description(self) -> None:
        by_brand = filter_products(self.products, search="  CERAVE ")
        self.assertTrue(by_brand)
        self.assertTrue(all(p.brand == "CeraVe" for p in by_brand))

        by_description = filter_products(self.products, search="ceramide")
        self.assertIn(1, [p.id for p in by_description])

    def test_category_and_search_combine(self) -> None:
        matches = filter_products(self.products, category="moisturizer", search="night")
        self.assertEqual([p.id for p in matches], [6])

    def test_no_filters_returns_everything_in_order(self) -> None:
        self.assertEqual(filter_products(self.products), self.products)
        self.assertEqual(filter_products(self.products, category="", search="   "), self.products)

    def test_find_product_compares_ids_loosely(self) -> None:
        self.assertEqual(find_product(self.products, "3").id, 3)
        self.assertEqual(find_product(self.products, 3).id, 3)
        self.assertIsNone(find_product(self.products, "999"))

    def test_list_categories_first_seen_order(self) -> None:
        categories = list_categories(self.products)
        self.assertEqual(categories[0], "cleanser")
        self.assertEqual(len(categories), len(set(categories)))

    def test_missing_or_malformed_catalog(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            missing = Path(tmp) / "nope.json"
            with self.assertRaises(CatalogUnavailable):
                load_catalog(missing)

            broken = Path(tmp) / "broken.json"
            broken.write_text("{products: ", encoding="utf-8")
            with self.assertRaises(CatalogUnavailable):
                load_catalog(broken)

            wrong_shape = Path(tmp) / "wrong.json"
            wrong_shape.write_text('{"products": [{"id": 1}]}', encoding="utf-8")
            with self.assertRaises(CatalogUnavailable):
                load_catalog(wrong_shape)
