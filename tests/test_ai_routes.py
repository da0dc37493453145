import unittest

from lamusic_importer import create_app
from lamusic_importer.config import Config
from lamusic_importer.db import close_db
from lamusic_importer.observability import reset_metrics_for_tests
from tests.helpers.fakes import ScriptedProvider, build_gateway, default_script
from tests.helpers.temp_db import TempDbSandbox


NFE_TEXT = "NF-e 000777 Emitente Distribuidora Harmonia CNPJ 11.222.333/0001-81"

BATCH_ANSWER = (
    '```json\n{"categorizations": ['
    '{"index": 0, "category": "Instrumentos de Percussao"}, '
    '{"index": 1, "category": "Acessorios Musicais"}]}\n```'
)


class AiRoutesTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        self._temp_db = TempDbSandbox(prefix="ai_routes")
        self.provider = ScriptedProvider(
            default_script(
                categorize_batch=BATCH_ANSWER,
                summary="Importacao de 1 produto da Distribuidora Harmonia.",
            )
        )
        self.app = create_app(self._temp_db.make_config(Config), ai_gateway=build_gateway(self.provider))
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()
        reset_metrics_for_tests()

    def test_status_reports_initialized_gateway(self) -> None:
        response = self.client.get("/api/v1/ai/status")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertTrue(payload["initialized"])
        self.assertEqual(payload["model"], "gemini-test")

    def test_categorize_products_uses_active_taxonomy(self) -> None:
        response = self.client.post(
            "/api/v1/ai/categorize-products",
            json={"products": [{"name": "Cajon"}, {"name": "Encordoamento 010"}]},
        )

        self.assertEqual(response.status_code, 200, response.get_data(as_text=True))
        payload = response.get_json()
        self.assertEqual(payload["count"], 2)
        self.assertEqual(payload["categorizations"][0]["category"], "Instrumentos de Percussao")
        self.assertEqual(len(payload["availableCategories"]), 5)
        prompt = [call[1] for call in self.provider.calls if call[0] == "categorize_batch"][0]
        self.assertIn("Cajon", prompt)
        self.assertIn("Acessorios Musicais", prompt)

    def test_categorize_products_rejects_bad_body(self) -> None:
        for body in ({}, {"products": []}, {"products": ["Cajon"]}, {"products": "Cajon"}):
            response = self.client.post("/api/v1/ai/categorize-products", json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.get_json()["error"], "validation_error")
        self.assertEqual(self.provider.count("categorize_batch"), 0)

    def test_categorize_products_maps_ai_failure_to_502(self) -> None:
        self.provider.script["categorize_batch"] = RuntimeError("503 UNAVAILABLE")
        response = self.client.post("/api/v1/ai/categorize-products", json={"products": [{"name": "Cajon"}]})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.get_json()["error"], "ai_call_failed")

    def test_import_summary_from_import_response(self) -> None:
        imported = self.client.post("/api/v1/import/nfe", json={"nfeXmlContent": NFE_TEXT})
        self.assertEqual(imported.status_code, 201, imported.get_data(as_text=True))

        response = self.client.post("/api/v1/ai/import-summary", json=imported.get_json())

        self.assertEqual(response.status_code, 200, response.get_data(as_text=True))
        payload = response.get_json()
        self.assertEqual(payload["summary"], "Importacao de 1 produto da Distribuidora Harmonia.")
        self.assertGreater(payload["tokensUsed"], 0)
        prompt = [call[1] for call in self.provider.calls if call[0] == "summary"][0]
        self.assertIn("Distribuidora Harmonia Ltda", prompt)
        self.assertIn("7000.00", prompt)
        self.assertIn("Instrumentos de Corda", prompt)

    def test_import_summary_requires_json_body(self) -> None:
        response = self.client.post("/api/v1/ai/import-summary", data="resumo", content_type="text/plain")
        self.assertEqual(response.status_code, 400)

    def test_import_summary_failure_is_502(self) -> None:
        self.provider.script["summary"] = RuntimeError("quota")
        response = self.client.post("/api/v1/ai/import-summary", json={"processedProducts": []})
        self.assertEqual(response.status_code, 502)


if __name__ == "__main__":
    unittest.main()
