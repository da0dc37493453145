import unittest

from lamusic_importer.domain.contracts import (
    ExtractedLineItem,
    ExtractedSupplier,
    ImportSummary,
    ProductEnrichment,
    line_items_from_payload,
)


class ExtractionContractsTest(unittest.TestCase):
    def test_supplier_accepts_wrapped_or_flat_payload(self) -> None:
        wrapped = ExtractedSupplier.from_payload({"supplier": {"name": " Harmonia ", "cnpj": "11.222.333/0001-81"}})
        flat = ExtractedSupplier.from_payload({"name": "Harmonia", "taxId": "11222333000181", "city": "null"})
        self.assertEqual(wrapped.name, "Harmonia")
        self.assertEqual(wrapped.tax_id, "11.222.333/0001-81")
        self.assertEqual(flat.tax_id, "11222333000181")
        self.assertIsNone(flat.city)
        self.assertEqual(ExtractedSupplier.from_payload([]).name, "")

    def test_line_item_amounts(self) -> None:
        item = ExtractedLineItem.from_payload({"name": "Cajon", "quantity": "3", "unitPrice": "1.234,50"})
        self.assertEqual(item.quantity, 3)
        self.assertEqual(item.unit_price, "1234.50")
        self.assertEqual(item.total_price, "3703.50")

    def test_line_item_rejects_garbage_amounts(self) -> None:
        item = ExtractedLineItem.from_payload({"name": "Cajon", "quantity": "dois", "unitPrice": "-5", "totalPrice": "NaN"})
        self.assertEqual(item.quantity, 0)
        self.assertEqual(item.unit_price, "0.00")
        self.assertEqual(item.total_price, "0.00")

    def test_line_items_skip_nameless_entries(self) -> None:
        items = line_items_from_payload({"products": [{"name": "Pedal"}, {"name": ""}, "texto", {"sku": "X"}]})
        self.assertEqual([item.name for item in items], ["Pedal"])
        self.assertEqual(line_items_from_payload([{"name": "Pedal"}])[0].name, "Pedal")
        self.assertEqual(line_items_from_payload("nada"), [])

    def test_enrichment_patch_omits_empty_fields(self) -> None:
        self.assertEqual(ProductEnrichment(description="Texto").as_patch(), {"description": "Texto"})

    def test_summary_payload(self) -> None:
        summary = ImportSummary(supplier={"id": "s1"}, processed_products=[{"id": "p1"}], available_categories_count=5)
        payload = summary.to_payload()
        self.assertEqual(payload["processedCount"], 1)
        self.assertEqual(payload["availableCategoriesCount"], 5)
        self.assertEqual(payload["totalValue"], "0.00")
        self.assertEqual(payload["warnings"], [])
        self.assertEqual(payload["categoryNames"], [])

    def test_summary_rebuilt_from_response_payload(self) -> None:
        original = ImportSummary(
            supplier={"id": "s1", "name": "Harmonia"},
            processed_products=[{"id": "p1"}, {"id": "p2"}],
            available_categories_count=5,
            created_count=1,
            restocked_count=1,
            total_value="1250.50",
            category_names=["Acessorios Musicais"],
            imported_at="2026-10-19T10:00:00Z",
            warnings=["Falha ao enriquecer Pedal."],
        )

        rebuilt = ImportSummary.from_payload(original.to_payload())

        self.assertEqual(rebuilt, original)

    def test_summary_from_loose_payload(self) -> None:
        rebuilt = ImportSummary.from_payload(
            {"supplier": "Harmonia", "processedProducts": "p1", "createdCount": "-3", "totalValue": "12,5"}
        )
        self.assertEqual(rebuilt.supplier, {})
        self.assertEqual(rebuilt.processed_count, 0)
        self.assertEqual(rebuilt.created_count, 0)
        self.assertEqual(rebuilt.total_value, "12.50")
        self.assertIsNone(rebuilt.imported_at)


if __name__ == "__main__":
    unittest.main()
