import asyncio
import unittest

import httpx

from ordertrack.core.errors import (
    NetworkError,
    NotAuthenticatedError,
    NotAuthorizedError,
    NotFoundError,
    OrderTrackError,
    ProfileDegradedError,
    UNEXPECTED_ERROR_MESSAGE,
    ValidationError,
    friendly_auth_message,
    translate_error,
)
from tests.fakes import FakeAPIError, FakeAuthApiError


class FriendlyAuthMessageTests(unittest.TestCase):
    def test_known_fragments_map_to_fixed_strings(self) -> None:
        self.assertEqual(
            friendly_auth_message(FakeAuthApiError("Invalid login credentials")),
            "Invalid email or password. Please try again.",
        )
        self.assertEqual(
            friendly_auth_message(FakeAuthApiError("User already registered")),
            "An account with this email already exists. Please sign in instead.",
        )
        self.assertEqual(
            friendly_auth_message(Exception("ERROR: duplicate key value violates unique constraint")),
            "This email is already registered. Please sign in instead.",
        )

    def test_unknown_message_falls_back_to_generic(self) -> None:
        self.assertEqual(friendly_auth_message(RuntimeError("kaboom")), UNEXPECTED_ERROR_MESSAGE)


class TranslateErrorTests(unittest.TestCase):
    def test_timeout_becomes_network_error(self) -> None:
        error = translate_error(asyncio.TimeoutError())
        self.assertIsInstance(error, NetworkError)
        self.assertIn("too long", error.message)

    def test_transport_error_becomes_network_error(self) -> None:
        self.assertIsInstance(translate_error(httpx.ConnectError("refused")), NetworkError)

    def test_row_level_security_becomes_not_authorized(self) -> None:
        self.assertIsInstance(translate_error(FakeAPIError("denied", code="42501")), NotAuthorizedError)
        self.assertIsInstance(
            translate_error(FakeAPIError("new row violates row-level security policy")),
            NotAuthorizedError,
        )

    def test_codes_map_to_not_found_and_validation(self) -> None:
        self.assertIsInstance(translate_error(FakeAPIError("no rows", code="PGRST116")), NotFoundError)
        self.assertIsInstance(translate_error(FakeAPIError("null value", code="23502")), ValidationError)

    def test_existing_errors_pass_through(self) -> None:
        original = NotFoundError("Order not found.")
        self.assertIs(translate_error(original), original)

    def test_unmapped_error_is_generic(self) -> None:
        error = translate_error(FakeAPIError("weird", code="XX000"))
        self.assertIs(type(error), OrderTrackError)
        self.assertEqual(error.message, UNEXPECTED_ERROR_MESSAGE)


class ErrorPayloadTests(unittest.TestCase):
    def test_payload_names_the_error(self) -> None:
        self.assertEqual(
            NotFoundError().to_dict(),
            {"detail": "Not found or you do not have permission to change it.", "error": "NotFoundError"},
        )

    def test_not_authenticated_carries_redirect_and_retry(self) -> None:
        payload = NotAuthenticatedError(retry=True).to_dict()
        self.assertEqual(payload["redirect_to"], "/login")
        self.assertTrue(payload["retry"])
        self.assertEqual(NotAuthenticatedError.status_code, 401)

    def test_degraded_carries_reason_and_repair_path(self) -> None:
        payload = ProfileDegradedError("missing_company").to_dict()
        self.assertEqual(payload["reason"], "missing_company")
        self.assertEqual(payload["repair_path"], "/profile/repair")


if __name__ == "__main__":
    unittest.main()
