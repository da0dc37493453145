import unittest

from lamusic_importer.application.category_service import CategoryService
from lamusic_importer.application.product_service import ProductService, sanitize_meta_title
from lamusic_importer.domain.contracts import ProductCreateInput
from lamusic_importer.errors import DuplicateSkuError, NotFoundError, ValidationError
from tests.helpers.temp_db import TempDbSandbox


ACTOR = "user-42"


class ProductServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = TempDbSandbox(prefix="lamusic_product")
        self.db = self.sandbox.open_database()
        self.service = ProductService()

    def tearDown(self) -> None:
        self.sandbox.cleanup()

    def _create(self, name: str = "Baixo Jazz Bass", sku: str | None = "BX-100", **kwargs) -> dict:
        data = ProductCreateInput(name=name, price=kwargs.pop("price", "4200.5"), stock_quantity=3, sku=sku, **kwargs)
        return self.service.create(self.db, data, ACTOR)

    def test_create_writes_product_and_created_log(self) -> None:
        product = self._create()

        self.assertEqual(product["slug"], "baixo-jazz-bass")
        self.assertEqual(product["price"], "4200.50")
        self.assertEqual(product["status"], "active")
        logs = self.service.list_logs(self.db, product["id"])
        self.assertEqual([entry["action"] for entry in logs], ["created"])
        self.assertIsNone(logs[0]["old_values"])
        self.assertEqual(logs[0]["new_values"]["sku"], "BX-100")
        self.assertEqual(logs[0]["responsible_user_id"], ACTOR)
        self.assertEqual(logs[0]["action_label"], "Produto criado")

    def test_duplicate_sku_is_rejected(self) -> None:
        self._create()
        with self.assertRaises(DuplicateSkuError):
            self._create(name="Outro Baixo")

    def test_same_name_gets_a_unique_slug(self) -> None:
        first = self._create(sku="A1")
        second = self._create(sku="A2")
        third = self._create(sku=None)
        self.assertEqual(first["slug"], "baixo-jazz-bass")
        self.assertEqual(second["slug"], "baixo-jazz-bass-1")
        self.assertEqual(third["slug"], "baixo-jazz-bass-2")

    def test_invalid_input_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self._create(name=" ")
        with self.assertRaises(ValidationError):
            self._create(price="-1")
        with self.assertRaises(ValidationError):
            self._create(status="archived")

    def test_update_logs_only_changed_fields(self) -> None:
        product = self._create()

        updated = self.service.update(
            self.db,
            product["id"],
            {"description": "Baixo de 4 cordas", "meta_title": "## Baixo **Jazz**\nsegunda linha", "name": product["name"]},
            ACTOR,
        )

        self.assertEqual(updated["meta_title"], "Baixo Jazz")
        logs = self.service.list_logs(self.db, product["id"])
        self.assertEqual([entry["action"] for entry in logs], ["created", "updated"])
        self.assertEqual(set(logs[1]["new_values"]), {"description", "meta_title"})
        self.assertIsNone(logs[1]["old_values"]["description"])

    def test_noop_update_writes_no_log(self) -> None:
        product = self._create()
        self.service.update(self.db, product["id"], {"name": "Baixo Jazz Bass"}, ACTOR)
        self.assertEqual(len(self.service.list_logs(self.db, product["id"])), 1)

    def test_update_rejects_unknown_fields_and_sku_clash(self) -> None:
        product = self._create()
        other = self._create(name="Violao", sku="VL-1")
        with self.assertRaises(ValidationError):
            self.service.update(self.db, product["id"], {"stock": 1}, ACTOR)
        with self.assertRaises(DuplicateSkuError):
            self.service.update(self.db, other["id"], {"sku": "BX-100"}, ACTOR)

    def test_stock_modes(self) -> None:
        product = self._create()

        self.assertEqual(self.service.update_stock(self.db, product["id"], 4, "increment", ACTOR)["stock_quantity"], 7)
        self.assertEqual(self.service.update_stock(self.db, product["id"], 10, "decrement", ACTOR)["stock_quantity"], 0)
        self.assertEqual(self.service.update_stock(self.db, product["id"], 5, "set", ACTOR)["stock_quantity"], 5)

        stock_logs = [entry for entry in self.service.list_logs(self.db, product["id"]) if entry["action"] == "stock_changed"]
        self.assertEqual(len(stock_logs), 3)
        self.assertEqual(stock_logs[0]["old_values"], {"stock_quantity": 3})
        self.assertEqual(stock_logs[0]["new_values"], {"stock_quantity": 7, "mode": "increment", "amount": 4})

    def test_stock_rejects_bad_mode_and_negative_amount(self) -> None:
        product = self._create()
        with self.assertRaises(ValidationError) as ctx:
            self.service.update_stock(self.db, product["id"], 1, "double")
        self.assertEqual(ctx.exception.message_key, "stock_mode_invalid")
        with self.assertRaises(ValidationError):
            self.service.update_stock(self.db, product["id"], -2)

    def test_remove_keeps_audit_trail(self) -> None:
        product = self._create()

        self.service.remove(self.db, product["id"], ACTOR)

        with self.assertRaises(NotFoundError):
            self.service.get(self.db, product["id"])
        self.assertIsNone(self.service.find_by_sku(self.db, "BX-100"))
        logs = self.service.list_logs(self.db, product["id"])
        self.assertEqual(logs[-1]["action"], "deleted")
        self.assertEqual(logs[-1]["old_values"]["sku"], "BX-100")
        replacement = self._create()
        self.assertNotEqual(replacement["slug"], product["slug"])

    def test_category_association(self) -> None:
        product = self._create()
        category = CategoryService().find_by_name(self.db, "Instrumentos de Corda")

        self.service.associate_category(self.db, product["id"], category["id"])
        self.service.associate_category(self.db, product["id"], category["id"])

        self.assertEqual(self.service.category_ids(self.db, product["id"]), [category["id"]])
        with self.assertRaises(NotFoundError):
            self.service.associate_category(self.db, product["id"], "missing")

    def test_list_logs_for_unknown_product(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.list_logs(self.db, "missing")

    def test_sanitize_meta_title(self) -> None:
        self.assertEqual(sanitize_meta_title("**Titulo**"), "Titulo")
        self.assertIsNone(sanitize_meta_title("  ** "))
        self.assertEqual(len(sanitize_meta_title("x" * 400)), 255)


if __name__ == "__main__":
    unittest.main()
