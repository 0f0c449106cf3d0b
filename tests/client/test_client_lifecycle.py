import contextvars
import unittest

from parseclient.core.exceptions import ConfigError, NotInitialized
from parseclient.client.client import ParseClient, configure, get_client
from parseclient.client.objects import ParseObject
from parseclient.client.storage import InMemoryStorage
from parseclient.client.testing import TEST_SERVER_URL, FakeParseServer


class TestClientLifecycle(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.server = FakeParseServer(application_id="app")

    def test_no_active_client(self):
        with self.assertRaises(NotInitialized):
            contextvars.Context().run(get_client)

    async def test_explicit_client_wins(self):
        client = ParseClient(application_id="app", server_url=TEST_SERVER_URL)
        self.assertIs(get_client(client), client)
        await client.aclose()

    async def test_configure_activates(self):
        client = configure(
            application_id="app",
            server_url=TEST_SERVER_URL,
            transport=self.server.transport(),
        )
        try:
            self.assertIs(get_client(), client)
            obj = ParseObject("Thing")
            obj.set("a", 1)
            await obj.save()
            self.assertEqual(len(self.server.requests), 1)
        finally:
            client.deactivate()
            await client.aclose()

    async def test_async_with_scopes_activation(self):
        outer = ParseClient(application_id="outer", server_url=TEST_SERVER_URL).activate()
        inner = ParseClient(application_id="inner", server_url=TEST_SERVER_URL)
        async with inner as active:
            self.assertIs(active, inner)
            self.assertIs(get_client(), inner)
        self.assertIs(get_client(), outer)
        outer.deactivate()
        await outer.aclose()

    async def test_invalid_settings(self):
        with self.assertRaises(NotInitialized):
            ParseClient(server_url=TEST_SERVER_URL)
        with self.assertRaises(NotInitialized):
            ParseClient(application_id="app", server_url=TEST_SERVER_URL, request_attempt_limit=0)

        client = ParseClient(application_id="app", server_url=TEST_SERVER_URL)
        with self.assertRaises(AttributeError):
            client.configure(bogus=1)
        with self.assertRaises(NotInitialized):
            client.configure(application_id="")
        self.assertEqual(client.config.application_id, "app")
        await client.aclose()

    async def test_optional_collaborators(self):
        client = ParseClient(application_id="app", server_url=TEST_SERVER_URL)
        with self.assertRaises(ConfigError):
            client.require_storage()
        with self.assertRaises(ConfigError):
            client.require_websocket_factory()
        await client.aclose()

        storage = InMemoryStorage()
        client = ParseClient(storage=storage, application_id="app", server_url=TEST_SERVER_URL)
        self.assertIs(client.require_storage(), storage)
        await client.aclose()


class TestInMemoryStorage(unittest.IsolatedAsyncioTestCase):
    async def test_round_trip(self):
        storage = InMemoryStorage()
        self.assertIsNone(await storage.get_string("k"))
        await storage.set_string("k", "v")
        self.assertEqual(await storage.get_string("k"), "v")
        await storage.remove("k")
        await storage.remove("k")
        self.assertIsNone(await storage.get_string("k"))
        await storage.set_string("a", "1")
        await storage.clear()
        self.assertIsNone(await storage.get_string("a"))


if __name__ == "__main__":
    unittest.main()
