import unittest

import pydantic

from parseclient.core.config import ClientConfig
from parseclient.core.exceptions import (ConfigError, ErrorCode,
                                         NotInitialized, ObjectNotFound,
                                         ParseError, RemoteError,
                                         error_from_response)


class TestClientConfig(unittest.TestCase):
    def test_defaults(self):
        config = ClientConfig(application_id="app", server_url="https://host/parse/")
        self.assertEqual(config.server_url, "https://host/parse")
        self.assertEqual(config.request_attempt_limit, 3)
        self.assertEqual(config.base_retry_delay_ms, 125)
        self.assertFalse(config.idempotency)
        self.assertEqual(config.read_timeout, 10.0)

    def test_live_query_url_inferred(self):
        config = ClientConfig(application_id="app", server_url="https://host/parse")
        self.assertEqual(config.resolved_live_query_url, "wss://host/parse")
        config.configure(server_url="http://localhost:1337/parse")
        self.assertEqual(config.resolved_live_query_url, "ws://localhost:1337/parse")
        config.configure(live_query_url="wss://live.host")
        self.assertEqual(config.resolved_live_query_url, "wss://live.host")

    def test_configure_rejects_unknown_keys(self):
        config = ClientConfig(application_id="app", server_url="https://host")
        with self.assertRaises(AttributeError):
            config.configure(not_a_setting=True)

    def test_configure_validates_values(self):
        config = ClientConfig(application_id="app", server_url="https://host")
        with self.assertRaises(pydantic.ValidationError):
            config.configure(request_attempt_limit=0)
        config.configure(server_url="https://other/")
        self.assertEqual(config.server_url, "https://other")

    def test_required_fields(self):
        with self.assertRaises(pydantic.ValidationError):
            ClientConfig(application_id="", server_url="https://host")
        with self.assertRaises(pydantic.ValidationError):
            ClientConfig(application_id="app")


class TestErrors(unittest.TestCase):
    def test_not_found_code_maps_to_object_not_found(self):
        error = error_from_response({"code": 101, "error": "Object not found."}, status_code=404)
        self.assertIsInstance(error, ObjectNotFound)
        self.assertIsInstance(error, RemoteError)
        self.assertEqual(error.code, ErrorCode.OBJECT_NOT_FOUND)
        self.assertEqual(error.status_code, 404)
        self.assertEqual(str(error), "[101] Object not found.")

    def test_other_codes_keep_their_code(self):
        error = error_from_response({"code": 202, "message": "taken"}, status_code=400)
        self.assertIs(type(error), RemoteError)
        self.assertEqual(error.code, 202)
        self.assertEqual(error.message, "taken")
        self.assertEqual(error.details, {"code": 202, "message": "taken"})

    def test_missing_code(self):
        error = error_from_response({"error": "unauthorized"}, status_code=403)
        self.assertEqual(error.code, ErrorCode.CONNECTION_FAILED)
        self.assertEqual(error.message, "unauthorized")

    def test_defaults(self):
        error = ConfigError()
        self.assertIsInstance(error, NotInitialized)
        self.assertIsInstance(error, ParseError)
        self.assertEqual(error.code, ErrorCode.NOT_INITIALIZED)


if __name__ == "__main__":
    unittest.main()
