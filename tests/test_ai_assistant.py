import unittest
from datetime import date

from ai_assistant import (
    build_followup_prompt,
    build_summary_prompt,
    format_ai_response,
    normalize_mode,
    parse_followup_payload,
    parse_summary_payload,
    pick_first,
    pick_last_turns,
    request_followup,
    request_summary,
    safe_json,
    to_number,
)
from errors import PayloadError, ValidationError


class RecordingClient:
    def __init__(self, reply="**Summary**\nAll good."):
        self.reply = reply
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        return self.reply


class ToNumberTests(unittest.TestCase):
    def test_numbers_and_money_strings(self):
        self.assertEqual(to_number(1500), 1500.0)
        self.assertEqual(to_number(12.5), 12.5)
        self.assertEqual(to_number("TZS 1,000,000.00"), 1000000.0)
        self.assertEqual(to_number("-TZS 2,500"), -2500.0)

    def test_unusable_values(self):
        for value in (None, True, "", "TZS", "1.2.3", float("nan"), float("inf"), [1], {"a": 1}):
            self.assertIsNone(to_number(value), value)

    def test_pick_first_skips_none_only(self):
        self.assertEqual(pick_first(None, 0, 5), 0)
        self.assertEqual(pick_first(None, "", "x"), "")
        self.assertIsNone(pick_first(None, None))


class SummaryPayloadTests(unittest.TestCase):
    def test_canonical_fields(self):
        parsed = parse_summary_payload({"month": "March 2026", "income": 1000, "expenses": 400, "balance": 650})
        self.assertEqual(parsed, {"month": "March 2026", "income": 1000.0, "expenses": 400.0, "balance": 650.0})

    def test_aliases_and_derived_balance(self):
        parsed = parse_summary_payload({"totalIncome": "TZS 1,000", "expenseText": "TZS 400.50"}, today=date(2026, 2, 1))
        self.assertEqual(parsed["month"], "February 2026")
        self.assertEqual(parsed["income"], 1000.0)
        self.assertEqual(parsed["expenses"], 400.5)
        self.assertEqual(parsed["balance"], 599.5)

    def test_non_string_month_falls_back(self):
        parsed = parse_summary_payload({"period": 3, "income": 1, "expense": 1}, today=date(2026, 7, 9))
        self.assertEqual(parsed["month"], "July 2026")
        self.assertEqual(parsed["balance"], 0.0)

    def test_missing_figures(self):
        with self.assertRaises(PayloadError) as ctx:
            parse_summary_payload({"month": "May 2026", "incomeText": "n/a", "expenses": 10})
        error = ctx.exception
        self.assertEqual(error.status_code, 400)
        self.assertEqual(error.message, "Missing or invalid fields")
        self.assertIn("balance", error.hint)
        self.assertEqual(error.received["income"], "n/a")
        self.assertIsNone(error.parsed["income"])
        self.assertEqual(error.parsed["expenses"], 10.0)

    def test_non_object_body(self):
        with self.assertRaises(PayloadError):
            parse_summary_payload(["income", 5])

    def test_summary_prompt(self):
        prompt = build_summary_prompt("March 2026", 1000.0, 400.5, 599.5, currency="USD")
        self.assertIn("Month: March 2026", prompt)
        self.assertIn("Income (USD): 1000", prompt)
        self.assertIn("Expenses (USD): 400.5", prompt)
        self.assertIn("Use ONLY the figures provided below.", prompt)
        self.assertTrue(prompt.startswith("You are a helpful assistant"))

    def test_request_summary_uses_payload_currency(self):
        client = RecordingClient()
        result = request_summary(client, {"income": 10, "expenses": 4, "currency": "USD"}, today=date(2026, 1, 5))
        self.assertEqual(result["text"], "**Summary**\nAll good.")
        self.assertEqual(result["parsed"]["month"], "January 2026")
        self.assertIn("Balance (USD): 6", client.prompts[0])

        request_summary(client, {"income": 10, "expenses": 4})
        self.assertIn("Income (TZS): 10", client.prompts[1])


class FollowupTests(unittest.TestCase):
    def test_normalize_mode(self):
        self.assertEqual(normalize_mode("RISK "), "risk")
        for raw in ("what-if", "whatif", "What_If"):
            self.assertEqual(normalize_mode(raw), "what-if")
        for raw in ("advice", "", None, "poetry", 3):
            self.assertEqual(normalize_mode(raw), "advice")

    def test_pick_last_turns(self):
        history = [{"role": "user", "content": str(i)} for i in range(10)]
        self.assertEqual([t["content"] for t in pick_last_turns(history)], ["4", "5", "6", "7", "8", "9"])
        self.assertEqual(pick_last_turns("nope"), [])
        self.assertEqual(pick_last_turns([None, {}, {"role": "user", "content": "hi"}]), [{"role": "user", "content": "hi"}])

    def test_safe_json(self):
        self.assertEqual(safe_json(None), "null")
        self.assertIn('"income": 5', safe_json({"income": 5, "day": date(2026, 1, 1)}))

    def test_missing_question(self):
        for body in ({}, {"question": "   "}, {"question": 5}, None):
            with self.assertRaises(ValidationError) as ctx:
                parse_followup_payload(body)
            self.assertEqual(ctx.exception.message, "Missing question")

    def test_prompt_contents(self):
        prompt = build_followup_prompt(
            "Can I afford a car?",
            {"income": 1000},
            [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
            "what-if",
        )
        self.assertIn("Mode:\nwhat-if", prompt)
        self.assertIn("Treat the question as a scenario simulation.", prompt)
        self.assertIn('"income": 1000', prompt)
        self.assertIn("User: hi\nAssistant: hello", prompt)
        self.assertTrue(prompt.endswith("User question:\nCan I afford a car?"))

        empty = build_followup_prompt("Q?", None, [], "advice")
        self.assertIn("Conversation (recent):\n(none)", empty)
        self.assertIn("Context (JSON):\nnull", empty)

    def test_request_followup(self):
        client = RecordingClient("ok")
        history = [{"role": "user", "content": str(i)} for i in range(8)]
        result = request_followup(client, {"question": " Why? ", "history": history, "mode": "whatif"})
        self.assertEqual(result["text"], "ok")
        self.assertEqual(result["mode"], "what-if")
        self.assertEqual(result["history_turns"], 6)
        self.assertEqual(result["question_length"], 4)
        self.assertNotIn("User: 1\n", client.prompts[0])


class FormatResponseTests(unittest.TestCase):
    def test_strips_markdown_and_flags_headings(self):
        blocks = format_ai_response("**Summary**\n\nYou saved *a lot*.\n\n**Insights**\n- Food up\n\nNext step: keep going")
        self.assertEqual([b["text"] for b in blocks], ["Summary", "You saved a lot.", "Insights", "- Food up", "Next step: keep going"])
        self.assertEqual([b["is_heading"] for b in blocks], [True, False, True, False, True])
        self.assertEqual([b["id"] for b in blocks], [0, 1, 2, 3, 4])

    def test_empty(self):
        self.assertEqual(format_ai_response(""), [])
        self.assertEqual(format_ai_response(None), [])


if __name__ == "__main__":
    unittest.main()
