from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

import requests

from matching_client import AttemptStatus, GeminiPlayerMatcher, build_prompt, is_quota_error, parse_reply
from models import PlayerRosterEntry

ROSTER = (
    PlayerRosterEntry(1234567, "Karl Etta", "Lecce"),
    PlayerRosterEntry(555, "Duvan Zapata", "Torino"),
)


def _response(status_code: int, body: object) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.text = str(body)
    return response


def _reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class PromptTests(unittest.TestCase):
    def test_numbered_list_with_ids(self) -> None:
        prompt = build_prompt(ROSTER, "K. Etta")

        self.assertIn('Player name from bet: "K. Etta"', prompt)
        self.assertIn('1. ID: 1234567, Name: "Karl Etta", Team: Lecce', prompt)
        self.assertIn('2. ID: 555, Name: "Duvan Zapata", Team: Torino', prompt)
        self.assertIn("NO_MATCH", prompt)


class ParseReplyTests(unittest.TestCase):
    def test_bare_id(self) -> None:
        attempt = parse_reply("1234567\n", ROSTER)
        self.assertEqual(attempt.status, AttemptStatus.MATCHED)
        self.assertEqual(attempt.player_id, 1234567)

    def test_no_match_token(self) -> None:
        self.assertEqual(parse_reply("NO_MATCH", ROSTER).status, AttemptStatus.NO_MATCH)

    def test_hallucinated_id_rejected(self) -> None:
        attempt = parse_reply("9999999", ROSTER)
        self.assertEqual(attempt.status, AttemptStatus.NO_MATCH)
        self.assertIsNone(attempt.player_id)


class QuotaClassificationTests(unittest.TestCase):
    def test_quota_signals(self) -> None:
        self.assertTrue(is_quota_error(429, {}))
        self.assertTrue(is_quota_error(400, {"error": {"status": "RESOURCE_EXHAUSTED"}}))
        self.assertTrue(is_quota_error(403, {"error": {"message": "Quota exceeded for metric"}}))
        self.assertFalse(is_quota_error(400, {"error": {"status": "INVALID_ARGUMENT", "message": "bad"}}))


class GeminiPlayerMatcherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.matcher = GeminiPlayerMatcher(api_key="key-a", timeout=5, name="gemini-1")

    def test_missing_key_rejected(self) -> None:
        with self.assertRaises(ValueError):
            GeminiPlayerMatcher(api_key="")

    @patch("matching_client.requests.post")
    def test_match_posts_prompt(self, post: MagicMock) -> None:
        post.return_value = _response(200, _reply("1234567"))

        attempt = self.matcher.match(ROSTER, "K. Etta")

        self.assertEqual(attempt.status, AttemptStatus.MATCHED)
        self.assertEqual(attempt.player_id, 1234567)
        url = post.call_args.args[0]
        self.assertTrue(url.endswith("/models/gemini-2.5-flash:generateContent"))
        self.assertEqual(post.call_args.kwargs["headers"], {"x-goog-api-key": "key-a"})
        self.assertEqual(post.call_args.kwargs["timeout"], 5)
        text = post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        self.assertIn("K. Etta", text)

    @patch("matching_client.requests.post")
    def test_rate_limited(self, post: MagicMock) -> None:
        post.return_value = _response(429, {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}})
        self.assertEqual(self.matcher.match(ROSTER, "K. Etta").status, AttemptStatus.QUOTA_EXHAUSTED)

    @patch("matching_client.requests.post")
    def test_server_error_is_failure(self, post: MagicMock) -> None:
        post.return_value = _response(500, {"error": {"code": 500, "status": "INTERNAL"}})
        self.assertEqual(self.matcher.match(ROSTER, "K. Etta").status, AttemptStatus.FAILED)

    @patch("matching_client.requests.post", side_effect=requests.Timeout("slow"))
    def test_timeout_is_failure(self, _post: MagicMock) -> None:
        self.assertEqual(self.matcher.match(ROSTER, "K. Etta").status, AttemptStatus.FAILED)

    @patch("matching_client.requests.post")
    def test_unexpected_shape_is_failure(self, post: MagicMock) -> None:
        post.return_value = _response(200, {"promptFeedback": {}})
        self.assertEqual(self.matcher.match(ROSTER, "K. Etta").status, AttemptStatus.FAILED)

    @patch("matching_client.requests.post")
    def test_non_object_candidate_is_failure(self, post: MagicMock) -> None:
        post.return_value = _response(200, {"candidates": ["oops"]})
        self.assertEqual(self.matcher.match(ROSTER, "K. Etta").status, AttemptStatus.FAILED)

    @patch("matching_client.requests.post")
    def test_non_object_content_is_failure(self, post: MagicMock) -> None:
        post.return_value = _response(200, {"candidates": [{"content": "1234567"}]})
        self.assertEqual(self.matcher.match(ROSTER, "K. Etta").status, AttemptStatus.FAILED)

    @patch("matching_client.requests.post")
    def test_empty_roster_skips_network(self, post: MagicMock) -> None:
        self.assertEqual(self.matcher.match((), "K. Etta").status, AttemptStatus.NO_MATCH)
        post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
