import unittest
from unittest.mock import patch

from lamusic_importer import create_app
from lamusic_importer.config import Config
from lamusic_importer.db import close_db
from lamusic_importer.observability import reset_metrics_for_tests
from lamusic_importer.ui_strings import error_message, success_message
from tests.helpers.fakes import ScriptedProvider, build_gateway, default_script
from tests.helpers.temp_db import TempDbSandbox


NFE_TEXT = "NF-e 000321 Emitente Distribuidora Harmonia CNPJ 11.222.333/0001-81"


class ImportRoutesTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        self._temp_db = TempDbSandbox(prefix="import_routes")
        self.provider = ScriptedProvider()
        self.app = create_app(self._temp_db.make_config(Config), ai_gateway=build_gateway(self.provider))
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()
        reset_metrics_for_tests()

    def _import(self, content=NFE_TEXT, **kwargs):
        return self.client.post("/api/v1/import/nfe", json={"nfeXmlContent": content}, **kwargs)

    def test_import_returns_summary(self) -> None:
        response = self._import()
        self.assertEqual(response.status_code, 201, response.get_data(as_text=True))

        payload = response.get_json()
        self.assertEqual(payload["detail"], success_message("nfe_imported"))
        self.assertEqual(payload["processedCount"], 1)
        self.assertEqual(payload["availableCategoriesCount"], 5)
        self.assertEqual(payload["createdCount"], 1)
        self.assertEqual(payload["totalValue"], "7000.00")
        self.assertEqual(payload["supplier"]["cnpj"], "11222333000181")
        self.assertEqual(payload["processedProducts"][0]["sku"], "GTR-001")
        self.assertTrue(payload["importedAt"].endswith("Z"))
        self.assertEqual(payload["warnings"], [])

    def test_product_logs_endpoint(self) -> None:
        product_id = self._import().get_json()["processedProducts"][0]["id"]

        response = self.client.get(f"/api/v1/products/{product_id}/logs")

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["count"], 2)
        self.assertEqual([entry["action"] for entry in payload["logs"]], ["created", "updated"])

    def test_logs_for_unknown_product_is_404(self) -> None:
        response = self.client.get("/api/v1/products/missing/logs")
        self.assertEqual(response.status_code, 404)
        payload = response.get_json()
        self.assertEqual(payload["error"], "not_found")
        self.assertEqual(payload["message"], error_message("product_not_found"))

    def test_missing_content_is_400(self) -> None:
        for body in ({}, {"nfeXmlContent": "   "}, {"nfeXmlContent": 12}):
            response = self.client.post("/api/v1/import/nfe", json=body)
            self.assertEqual(response.status_code, 400)
            payload = response.get_json()
            self.assertEqual(payload["error"], "validation_error")
            self.assertEqual(payload["message"], error_message("nfe_content_required"))
            self.assertTrue(payload["request_id"].strip())
        self.assertEqual(self.provider.calls, [])

    def test_invalid_document_is_400(self) -> None:
        self.provider.script["validation"] = "RESULTADO: INVÁLIDA"
        response = self._import()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "invalid_document")

    def test_extraction_failure_is_502(self) -> None:
        self.provider.script["supplier"] = RuntimeError("quota")
        response = self._import()
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.get_json()["error"], "ai_call_failed")

    def test_unparseable_extraction_is_422(self) -> None:
        self.provider.script["products"] = "nenhum produto"
        response = self._import()
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json()["error"], "unprocessable_response")

    def test_request_id_is_echoed(self) -> None:
        response = self.client.post("/api/v1/import/nfe", json={}, headers={"X-Request-Id": "req-nfe-1"})
        self.assertEqual(response.headers.get("X-Request-Id"), "req-nfe-1")
        self.assertEqual(response.get_json()["request_id"], "req-nfe-1")

    def test_unexpected_error_is_masked(self) -> None:
        with patch(
            "lamusic_importer.routes.import_routes.ImportService.process_nfe",
            side_effect=RuntimeError("segredo interno"),
        ):
            response = self._import()

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "unexpected_error")
        self.assertNotIn("details", payload)
        self.assertNotIn("segredo", response.get_data(as_text=True))

    def test_health_and_metrics(self) -> None:
        self._import()

        health = self.client.get("/health")
        self.assertEqual(health.status_code, 200)
        payload = health.get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["db"], "sqlite")
        self.assertTrue(payload["ai"]["initialized"])
        self.assertEqual(payload["metrics"]["imports"]["by_result"], {"committed": 1})

        metrics = self.client.get("/metrics")
        self.assertEqual(metrics.status_code, 200)
        self.assertIn("text/plain", metrics.headers.get("Content-Type") or "")
        body = metrics.get_data(as_text=True)
        self.assertIn('nfe_imports_total{result="committed"} 1', body)
        self.assertIn('ai_calls_total{outcome="ok"}', body)
        self.assertIn("http_request_duration_ms_bucket", body)


class AiNotConfiguredRouteTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="import_routes_no_ai")
        self.app = create_app(self._temp_db.make_config(Config, GEMINI_API_KEY=None))
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_import_without_ai_key_is_500(self) -> None:
        response = self.client.post("/api/v1/import/nfe", json={"nfeXmlContent": NFE_TEXT})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()["error"], "ai_not_configured")
        self.assertFalse(self.client.get("/health").get_json()["ai"]["initialized"])


if __name__ == "__main__":
    unittest.main()
