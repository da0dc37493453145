import json
import unittest

from lamusic_importer.contexts.ai.application.response_parser import parse_ai_response, strip_code_fence
from lamusic_importer.errors import UnprocessableResponseError


class ResponseParserTest(unittest.TestCase):
    def test_fenced_json_with_language_tag(self) -> None:
        raw = 'Segue o resultado:\n```json\n{"supplier": {"name": "Harmonia"}}\n```\nObrigado.'
        self.assertEqual(parse_ai_response(raw), {"supplier": {"name": "Harmonia"}})

    def test_fenced_json_without_language_tag(self) -> None:
        self.assertEqual(parse_ai_response('```\n[1, 2]\n```'), [1, 2])

    def test_inline_fence(self) -> None:
        self.assertEqual(strip_code_fence('```{"a": 1}```'), '{"a": 1}')

    def test_fenced_rendering_round_trips(self) -> None:
        payloads = (
            {"note": "use ``` here"},
            {"description": "Exemplo:\n```json\n{}\n```\nfim"},
            [{"name": "Viol\u00e3o", "price": "899.90"}, {"name": "Cajon", "price": 0}],
            {"products": []},
            "```",
            42,
        )
        for payload in payloads:
            for indent in (None, 2):
                rendered = "```json\n" + json.dumps(payload, ensure_ascii=False, indent=indent) + "\n```"
                with self.subTest(payload=payload, indent=indent):
                    self.assertEqual(parse_ai_response(rendered), payload)

    def test_trailing_prose_after_fence_is_dropped(self) -> None:
        raw = "```json\n{\"note\": \"a ``` b\"}\n```\nQualquer duvida estou a disposicao."
        self.assertEqual(parse_ai_response(raw), {"note": "a ``` b"})

    def test_raw_json_passes_through(self) -> None:
        self.assertEqual(parse_ai_response('  {"products": []}  '), {"products": []})

    def test_empty_and_whitespace_fail(self) -> None:
        for raw in (None, "", "   \n "):
            with self.assertRaises(UnprocessableResponseError):
                parse_ai_response(raw)

    def test_empty_fence_fails(self) -> None:
        with self.assertRaises(UnprocessableResponseError):
            parse_ai_response("```json\n\n```")

    def test_invalid_json_fails(self) -> None:
        with self.assertRaises(UnprocessableResponseError) as ctx:
            parse_ai_response("RESULTADO: VÁLIDA")
        self.assertEqual(ctx.exception.http_status, 422)
        self.assertEqual(ctx.exception.code, "unprocessable_response")


if __name__ == "__main__":
    unittest.main()
