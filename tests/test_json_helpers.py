import unittest

from services.helpers.ai.json_helpers import (
    extract_first_json_object,
    fix_trailing_commas,
    parse_candidates,
    parse_json_safe,
    strip_code_fences,
)


class ExtractFirstJsonObjectTests(unittest.TestCase):
    def test_braces_inside_strings_are_ignored(self) -> None:
        text = 'noise {"a": "x}y{", "b": {"c": 1}} trailing }'
        self.assertEqual(extract_first_json_object(text), '{"a": "x}y{", "b": {"c": 1}}')

    def test_escaped_quotes_do_not_end_strings(self) -> None:
        text = '{"q": "he said \\"}\\" loudly", "n": 2}'
        self.assertEqual(extract_first_json_object(text), text)

    def test_unbalanced_returns_none(self) -> None:
        self.assertIsNone(extract_first_json_object('{"a": {"b": 1}'))
        self.assertIsNone(extract_first_json_object("no json here"))


class ParseJsonSafeTests(unittest.TestCase):
    def test_trailing_comma_is_repaired(self) -> None:
        self.assertEqual(parse_json_safe('{"a":1,}'), {"a": 1})
        self.assertEqual(parse_json_safe('{"a": [1, 2 ,] ,}'), {"a": [1, 2]})

    def test_fenced_block_with_prose(self) -> None:
        raw = 'Here you go:\n```json\n{"trade_decision": "TRADE"}\n```\nThanks!'
        self.assertEqual(parse_json_safe(raw), {"trade_decision": "TRADE"})

    def test_bom_and_crlf(self) -> None:
        raw = '\ufeff{\r\n  "a": 1\r\n}'
        self.assertEqual(parse_json_safe(raw), {"a": 1})

    def test_object_embedded_in_prose(self) -> None:
        raw = 'The answer is {"bias": "bullish", "note": "a {brace}"} as requested.'
        self.assertEqual(parse_json_safe(raw), {"bias": "bullish", "note": "a {brace}"})

    def test_expect_object_rejects_arrays(self) -> None:
        self.assertIsNone(parse_json_safe("[1, 2]"))
        self.assertEqual(parse_json_safe("[1, 2]", expect="any"), [1, 2])

    def test_garbage_and_empty_return_none(self) -> None:
        self.assertIsNone(parse_json_safe(""))
        self.assertIsNone(parse_json_safe("   "))
        self.assertIsNone(parse_json_safe("not json at all"))
        self.assertIsNone(parse_json_safe(None))  # type: ignore[arg-type]

    def test_custom_strategy_chain(self) -> None:
        self.assertIsNone(parse_json_safe('{"a":1,}', strategies=[lambda s: None]))


class HelperTests(unittest.TestCase):
    def test_fix_trailing_commas(self) -> None:
        self.assertEqual(fix_trailing_commas('{"a": 1 , }'), '{"a": 1  }')
        self.assertEqual(fix_trailing_commas("[1,\n]"), "[1\n]")

    def test_strip_code_fences(self) -> None:
        self.assertEqual(strip_code_fences("```json\n{}\n```"), "{}")

    def test_candidates_are_deduplicated(self) -> None:
        candidates = parse_candidates('{"a": 1}')
        self.assertEqual(candidates, ['{"a": 1}'])


if __name__ == "__main__":
    unittest.main()
