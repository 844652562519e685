import time
import unittest
from unittest.mock import MagicMock

import requests

from nowandlater.auth import (
    ACCESS_TOKEN_INFO_URL,
    ID_TOKEN_INFO_URL,
    GoogleTokenValidator,
    StaticCredentialValidator,
    extract_bearer_token,
)
from nowandlater.errors import NeedsRefresh, TransientBackendFailure, Unauthenticated


def make_response(body=None, status=200):
    response = MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.json.return_value = body
    return response


class BearerHeaderTests(unittest.TestCase):
    def test_extracts_token(self):
        self.assertEqual(extract_bearer_token("Bearer abc"), "abc")

    def test_rejects_missing_or_malformed_headers(self):
        for header in (None, "", "Basic abc", "Bearer ", "bearer abc"):
            with self.subTest(header=header):
                with self.assertRaises(Unauthenticated):
                    extract_bearer_token(header)


class GoogleTokenValidatorTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.validator = GoogleTokenValidator(
            client_id="client-1", timeout=3, session=self.session
        )

    def test_valid_access_token(self):
        self.session.get.return_value = make_response(
            {
                "audience": "client-1",
                "user_id": "1234",
                "email": "ann@example.com",
                "expires_in": 1800,
            }
        )

        principal = self.validator.validate("Bearer ya29.good")

        self.assertEqual(principal.id, "1234")
        self.assertEqual(principal.email, "ann@example.com")
        self.assertEqual(principal.credential, "ya29.good")
        self.assertTrue(principal.is_bearer)
        self.session.get.assert_called_once_with(
            ACCESS_TOKEN_INFO_URL, params={"access_token": "ya29.good"}, timeout=3
        )

    def test_wrong_audience_is_rejected(self):
        self.session.get.return_value = make_response(
            {"audience": "someone-else", "user_id": "1234", "expires_in": 1800}
        )
        with self.assertRaises(Unauthenticated):
            self.validator.validate("Bearer ya29.good")

    def test_rejected_access_token_needs_refresh(self):
        self.session.get.return_value = make_response({"error": "invalid_token"}, status=400)

        with self.assertRaises(NeedsRefresh):
            self.validator.validate("Bearer ya29.expired")

    def test_unknown_token_is_unauthenticated(self):
        self.session.get.return_value = make_response({"error": "invalid_token"}, status=400)

        with self.assertRaises(Unauthenticated):
            self.validator.validate("Bearer garbage")

    def test_id_token_fallback(self):
        self.session.get.side_effect = [
            make_response({"error": "invalid_token"}, status=400),
            make_response(
                {
                    "aud": "client-1",
                    "sub": "sub-1",
                    "email": "ann@example.com",
                    "exp": str(int(time.time()) + 600),
                }
            ),
        ]

        principal = self.validator.validate("Bearer eyJhbGciOiJSUzI1NiJ9.payload.sig")

        self.assertEqual(principal.id, "sub-1")
        self.assertFalse(principal.is_bearer)
        self.assertEqual(self.session.get.call_args.args[0], ID_TOKEN_INFO_URL)

    def test_expired_id_token_needs_refresh(self):
        self.session.get.side_effect = [
            make_response({"error": "invalid_token"}, status=400),
            make_response({"aud": "client-1", "sub": "sub-1", "exp": "1000"}),
        ]

        with self.assertRaises(NeedsRefresh):
            self.validator.validate("Bearer eyJhbGciOiJSUzI1NiJ9.payload.sig")

    def test_tokeninfo_outage_is_transient(self):
        self.session.get.side_effect = requests.ConnectionError("reset")

        with self.assertRaises(TransientBackendFailure):
            self.validator.validate("Bearer ya29.good")


class StaticCredentialValidatorTests(unittest.TestCase):
    def test_registered_and_expired_tokens(self):
        validator = StaticCredentialValidator()
        validator.register("token-a", "user-a")
        validator.expired.add("token-old")

        self.assertEqual(validator.validate("Bearer token-a").id, "user-a")
        with self.assertRaises(NeedsRefresh):
            validator.validate("Bearer token-old")
        with self.assertRaises(Unauthenticated):
            validator.validate("Bearer token-b")


if __name__ == "__main__":
    unittest.main()
