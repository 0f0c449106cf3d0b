"""Record entity behavior, locally and against the in-memory backend."""
import unittest

from hypothesis import given
from hypothesis import strategies as st

from parseclient.core.classes import ParseACL
from parseclient.core.exceptions import (ErrorCode, ObjectNotFound,
                                         PreconditionError, RemoteError,
                                         ValidationError)
from parseclient.core.operations import AddOperation, RemoveOperation
from parseclient.core.types import RESERVED_KEYS
from parseclient.client.objects import ParseObject
from parseclient.client.testing import FakeParseServer, make_test_client

field_names = st.text(min_size=1, max_size=20).filter(lambda k: k not in RESERVED_KEYS)
field_values = st.none() | st.booleans() | st.integers() | st.text() | st.lists(st.integers(), max_size=3)


class GameScore(ParseObject):
    parse_class_name = "GameScore"


class TestLocalState(unittest.TestCase):
    @given(field_names, field_values)
    def test_set_then_get(self, key, value):
        obj = ParseObject("Thing")
        obj.set(key, value)
        self.assertEqual(obj.get(key), value)
        self.assertIn(key, obj.dirty_keys)
        self.assertTrue(obj.is_key_dirty(key))

    def test_explicit_null_differs_from_absent(self):
        obj = ParseObject("Thing")
        obj.set("nothing", None)
        self.assertIsNone(obj.get("nothing", "default"))
        self.assertEqual(obj.get("missing", "default"), "default")
        self.assertTrue(obj.is_key_dirty("nothing"))
        self.assertFalse(obj.has("nothing"))

    def test_reserved_keys_rejected_without_side_effects(self):
        obj = ParseObject("Thing")
        for key in ("id", "objectId", "createdAt", "updatedAt", "ACL"):
            with self.assertRaises(ValidationError) as cm:
                obj.set(key, "x")
            self.assertEqual(cm.exception.code, ErrorCode.INVALID_KEY_NAME)
            with self.assertRaises(ValidationError):
                obj.add(key, "x")
        self.assertEqual(obj.dirty_keys, [])
        self.assertEqual(obj.keys(), [])

    def test_set_all_is_checked_up_front(self):
        obj = ParseObject("Thing")
        with self.assertRaises(ValidationError):
            obj.set_all({"a": 1, "createdAt": 2})
        self.assertFalse(obj.is_dirty)
        self.assertIs(obj.set_all({"a": 1, "b": 2}), obj)
        self.assertEqual(obj.dirty_keys, ["a", "b"])

    def test_subclass_uses_its_class_name(self):
        score = GameScore()
        self.assertEqual(score.class_name, "GameScore")
        self.assertIs(ParseObject.class_for("GameScore"), GameScore)
        with self.assertRaises(ValidationError):
            ParseObject()

    def test_get_as(self):
        obj = ParseObject("Thing")
        obj.set("n", 3)
        self.assertEqual(obj.get_as("n", int), 3)
        self.assertIsNone(obj.get_as("missing", int))
        with self.assertRaises(ValidationError) as cm:
            obj.get_as("n", str)
        self.assertEqual(cm.exception.code, ErrorCode.INCORRECT_TYPE)

    def test_increment_stores_plain_value(self):
        obj = ParseObject("Thing")
        obj.increment("count")
        obj.increment("count", 4)
        obj.decrement("count", 2)
        self.assertEqual(obj.get("count"), 3)
        self.assertEqual(obj._build_save_body(), {"count": 3})

    def test_increment_non_numeric_fails(self):
        obj = ParseObject("Thing")
        obj.set("name", "x")
        with self.assertRaises(ValidationError):
            obj.increment("name")
        with self.assertRaises(ValidationError):
            obj.increment("other", "1")

    def test_array_operations_read_back_immediately(self):
        obj = ParseObject.from_json("Thing", {"objectId": "t1", "tags": ["a"]})
        obj.add("tags", "b")
        obj.add_all("tags", ["c", "a"])
        self.assertEqual(obj.get("tags"), ["a", "b", "c", "a"])
        self.assertEqual(obj.pending_operation("tags"), AddOperation(("b", "c", "a")))

        other = ParseObject.from_json("Thing", {"objectId": "t2", "tags": ["a", "b"]})
        other.add_unique("tags", "a")
        other.add_all_unique("tags", ["c"])
        self.assertEqual(other.get("tags"), ["a", "b", "c"])

        third = ParseObject.from_json("Thing", {"objectId": "t3", "tags": ["a", "b"]})
        third.remove_all("tags", ["a"])
        self.assertEqual(third.get("tags"), ["b"])
        self.assertEqual(third.pending_operation("tags"), RemoveOperation(("a",)))

    def test_array_operation_after_set_collapses_to_set(self):
        obj = ParseObject("Thing")
        obj.set("tags", ["a"])
        obj.add("tags", "b")
        self.assertEqual(obj.get("tags"), ["a", "b"])
        self.assertEqual(obj._build_save_body(), {"tags": ["a", "b"]})

    def test_array_operations_after_explicit_null(self):
        obj = ParseObject("Thing")
        obj.set("tags", None)
        obj.add("tags", "x")
        self.assertEqual(obj.get("tags"), ["x"])
        self.assertEqual(obj._build_save_body(), {"tags": ["x"]})

        obj.set("labels", None)
        obj.add_unique("labels", "a")
        self.assertEqual(obj.get("labels"), ["a"])

        obj.set("gone", None)
        obj.remove("gone", "a")
        self.assertIn("gone", obj.keys())
        self.assertIsNone(obj.get("gone"))

    def test_unset(self):
        obj = ParseObject.from_json("Thing", {"objectId": "t1", "name": "x"})
        obj.unset("name")
        self.assertIsNone(obj.get("name"))
        self.assertNotIn("name", obj.keys())
        self.assertEqual(obj._build_save_body(), {"name": {"__op": "Delete"}})

    def test_acl(self):
        obj = ParseObject("Thing")
        acl = ParseACL()
        acl.set_public_read_access(True)
        obj.set_acl(acl)
        self.assertTrue(obj.is_key_dirty("ACL"))
        self.assertEqual(obj._build_save_body(), {"ACL": {"*": {"read": True}}})

    def test_equality(self):
        a = ParseObject.create_without_data("Thing", "x")
        b = ParseObject.create_without_data("Thing", "x")
        c = ParseObject.create_without_data("Other", "x")
        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))
        self.assertNotEqual(a, c)

        fresh = ParseObject("Thing")
        self.assertEqual(fresh, fresh)
        self.assertNotEqual(fresh, ParseObject("Thing"))
        self.assertEqual(len({fresh, ParseObject("Thing")}), 2)

        seen = {fresh}
        fresh.object_id = "t9"
        self.assertIn(fresh, seen)

    def test_to_wire_format(self):
        obj = ParseObject.from_json("Thing", {
            "objectId": "t1",
            "createdAt": "2024-01-02T03:04:05.000Z",
            "ACL": {"*": {"read": True}},
            "name": "x",
        })
        obj.set("score", 3)
        self.assertEqual(obj.to_wire_format(), {
            "objectId": "t1",
            "createdAt": "2024-01-02T03:04:05.000Z",
            "ACL": {"*": {"read": True}},
            "name": "x",
            "score": 3,
        })
        full = obj.to_wire_format(full=True)
        self.assertEqual(full["__type"], "Object")
        self.assertEqual(full["className"], "Thing")


class TestPersistence(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.server = FakeParseServer(application_id="app", master_key="master")
        self.client = make_test_client(self.server)

    async def asyncTearDown(self):
        await self.client.aclose()

    async def test_save_new_object(self):
        obj = ParseObject("GameScore", client=self.client)
        obj.set("score", 1337)
        obj.set("player", "Sean")
        await obj.save()

        self.assertIsNotNone(obj.object_id)
        self.assertFalse(obj.is_dirty)
        self.assertEqual(obj.get("score"), 1337)
        self.assertEqual(obj.get("player"), "Sean")
        self.assertIsNotNone(obj.created_at)
        self.assertEqual(obj.updated_at, obj.created_at)

        request = self.server.last_request
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/parse/classes/GameScore")
        self.assertEqual(self.server.request_json(request), {"score": 1337, "player": "Sean"})

    async def test_update_sends_only_dirty_fields(self):
        obj = ParseObject("GameScore", client=self.client)
        obj.set("score", 1)
        obj.set("player", "Sean")
        await obj.save()

        obj.set("score", 2)
        obj.unset("player")
        await obj.save()

        request = self.server.last_request
        self.assertEqual(request.method, "PUT")
        self.assertEqual(request.url.path, f"/parse/classes/GameScore/{obj.object_id}")
        self.assertEqual(
            self.server.request_json(request),
            {"score": 2, "player": {"__op": "Delete"}},
        )
        stored = self.server.classes["GameScore"][obj.object_id]
        self.assertEqual(stored["score"], 2)
        self.assertNotIn("player", stored)

    async def test_operations_are_sent_and_applied(self):
        obj = ParseObject("GameScore", client=self.client)
        obj.set("tags", ["a"])
        await obj.save()

        obj.add("tags", "b")
        await obj.save()
        self.assertEqual(
            self.server.request_json(self.server.last_request)["tags"],
            {"__op": "Add", "objects": ["b"]},
        )
        self.assertEqual(self.server.classes["GameScore"][obj.object_id]["tags"], ["a", "b"])
        self.assertEqual(obj.get("tags"), ["a", "b"])

        obj.remove("tags", "a")
        await obj.save()
        self.assertEqual(
            self.server.request_json(self.server.last_request)["tags"],
            {"__op": "Remove", "objects": ["a"]},
        )
        self.assertEqual(obj.get("tags"), ["b"])
        self.assertEqual(self.server.classes["GameScore"][obj.object_id]["tags"], ["b"])

    async def test_pointer_and_date_fields_round_trip(self):
        player = ParseObject("Player", client=self.client)
        player.set("name", "Dan")
        await player.save()

        score = ParseObject("GameScore", client=self.client)
        score.set("player", player)
        await score.save()

        fetched = ParseObject.create_without_data("GameScore", score.object_id, client=self.client)
        await fetched.fetch()
        self.assertEqual(fetched.get("player"), player)
        self.assertIsNot(fetched.get("player"), player)

    async def test_fetch_without_id_makes_no_request(self):
        obj = ParseObject("GameScore", client=self.client)
        with self.assertRaises(PreconditionError) as cm:
            await obj.fetch()
        self.assertEqual(cm.exception.code, ErrorCode.MISSING_OBJECT_ID)
        self.assertEqual(self.server.requests, [])

    async def test_fetch_replaces_state(self):
        obj = ParseObject("GameScore", client=self.client)
        obj.set("score", 1)
        await obj.save()
        self.server.classes["GameScore"][obj.object_id]["score"] = 99
        self.server.classes["GameScore"][obj.object_id]["ACL"] = {"*": {"read": True}}

        obj.set("local", "pending")
        await obj.fetch()
        self.assertEqual(obj.get("score"), 99)
        self.assertIsNone(obj.get("local"))
        self.assertFalse(obj.is_dirty)
        self.assertTrue(obj.acl.get_public_read_access())

    async def test_fetch_missing_object_raises(self):
        obj = ParseObject.create_without_data("GameScore", "nope", client=self.client)
        with self.assertRaises(ObjectNotFound) as cm:
            await obj.fetch()
        self.assertEqual(cm.exception.status_code, 404)

    async def test_delete_resets_object(self):
        obj = ParseObject("GameScore", client=self.client)
        obj.set("score", 1)
        await obj.save()
        object_id = obj.object_id

        await obj.delete()
        self.assertIsNone(obj.object_id)
        self.assertIsNone(obj.created_at)
        self.assertIsNone(obj.get("score"))
        self.assertFalse(obj.is_dirty)
        self.assertNotIn(object_id, self.server.classes["GameScore"])

        with self.assertRaises(PreconditionError):
            await obj.delete()

    async def test_failed_save_keeps_pending_state(self):
        obj = ParseObject("GameScore", client=self.client)
        obj.set("score", 1)
        self.server.fail_next(400, json_body={"code": 111, "error": "bad type"})
        with self.assertRaises(RemoteError) as cm:
            await obj.save()
        self.assertEqual(cm.exception.code, 111)
        self.assertIsNone(obj.object_id)
        self.assertTrue(obj.is_key_dirty("score"))
        self.assertEqual(obj.get("score"), 1)


if __name__ == "__main__":
    unittest.main()
