"""
Test tooling for the client.

``FakeParseServer`` is an in-process backend that plugs into
``httpx.MockTransport``, so client calls run end to end without an HTTP
server. The cleanup helpers work against any backend.
"""
import base64
import copy
import datetime
import json
import logging
import math
import re
import time
import uuid
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx

from parseclient.core.exceptions import ErrorCode
from parseclient.core.types import HTTPMethod
from parseclient.client.client import ParseClient, get_client
from parseclient.client.codec import format_date
from parseclient.client.query import ParseQuery
from parseclient.client.transport import RequestOptions

logger = logging.getLogger(__name__)

_ROOTS = ("classes", "files", "functions", "users", "login", "logout",
          "requestPasswordReset", "schemas")

_EARTH_RADIUS_KM = 6371.0
_MILES_PER_KM = 0.621371


def _now() -> str:
    return format_date(datetime.datetime.now(datetime.timezone.utc))


def _new_id() -> str:
    return uuid.uuid4().hex[:10]


def _error(status: int, code: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"code": code, "error": message})


def _comparable(value: Any) -> Any:
    if isinstance(value, dict):
        if value.get("__type") == "Date":
            return value.get("iso")
        if value.get("__type") in ("Pointer", "Object"):
            return (value.get("className"), value.get("objectId"))
    return value


def _same(a: Any, b: Any) -> bool:
    return _comparable(a) == _comparable(b)


def _distance_km(a: Dict[str, Any], b: Dict[str, Any]) -> float:
    lat1, lat2 = math.radians(a["latitude"]), math.radians(b["latitude"])
    dlat = lat2 - lat1
    dlon = math.radians(b["longitude"] - a["longitude"])
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * _EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class FakeParseServer:
    """
    In-memory backend speaking the REST protocol.

    Usage:
        server = FakeParseServer(application_id="app", master_key="master")
        client = ParseClient(
            application_id="app",
            server_url="https://parse.test/parse",
            master_key="master",
            transport=server.transport(),
        )

    Every request is recorded in ``requests``. ``fail_next`` and
    ``raise_next`` script failures ahead of normal handling.
    """

    def __init__(self, application_id: Optional[str] = None, master_key: Optional[str] = None):
        self.application_id = application_id
        self.master_key = master_key
        self.classes: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # (class, id, key) -> list of (target class, target id)
        self.relations: Dict[Tuple[str, str, str], List[Tuple[str, str]]] = {}
        self.files: Dict[str, bytes] = {}
        self.functions: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.passwords: Dict[str, str] = {}
        self.sessions: Dict[str, str] = {}
        self.password_resets: List[str] = []
        self.requests: List[httpx.Request] = []
        self._scripted: deque = deque()

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # -- Scripting --

    def fail_next(self, status_code: int = 503, json_body: Any = None,
                  text: Optional[str] = None, times: int = 1) -> None:
        for _ in range(times):
            if json_body is not None:
                self._scripted.append(httpx.Response(status_code, json=json_body))
            else:
                self._scripted.append(httpx.Response(status_code, text=text or ""))

    def raise_next(self, exc: Exception, times: int = 1) -> None:
        for _ in range(times):
            self._scripted.append(exc)

    def define_function(self, name: str, func: Callable[[Dict[str, Any]], Any]) -> None:
        self.functions[name] = func

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    @staticmethod
    def request_json(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None

    # -- Dispatch --

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._scripted:
            scripted = self._scripted.popleft()
            if isinstance(scripted, Exception):
                raise scripted
            return scripted

        if self.application_id and request.headers.get("X-Parse-Application-Id") != self.application_id:
            return httpx.Response(403, json={"error": "unauthorized"})

        parts = [unquote(p) for p in request.url.path.split("/") if p]
        roots = [i for i, p in enumerate(parts) if p in _ROOTS]
        if not roots:
            return _error(404, ErrorCode.INVALID_CLASS_NAME, "Unknown endpoint")
        parts = parts[roots[0]:]
        root, rest = parts[0], parts[1:]
        method = request.method
        body = self.request_json(request) if method in ("POST", "PUT") else None
        params = dict(request.url.params)

        if root == "classes" and len(rest) == 1:
            if method == "POST":
                return self._create(rest[0], body or {})
            if method == "GET":
                return self._find(rest[0], params)
        if root == "classes" and len(rest) == 2:
            if method == "GET":
                return self._get(rest[0], rest[1], params)
            if method == "PUT":
                return self._update(rest[0], rest[1], body or {})
            if method == "DELETE":
                return self._delete(rest[0], rest[1])
        if root == "files" and len(rest) == 1:
            if method == "POST":
                return self._save_file(rest[0], body or {})
            if method == "DELETE":
                return self._delete_file(request, rest[0])
        if root == "functions" and len(rest) == 1 and method == "POST":
            return self._run_function(rest[0], body or {})
        if root == "users":
            if not rest and method == "POST":
                return self._sign_up(body or {})
            if rest == ["me"] and method == "GET":
                return self._me(request)
            if len(rest) == 1:
                return self._dispatch_user(method, rest[0], body, params)
        if root == "login" and method in ("POST", "GET"):
            return self._login(body if body is not None else params)
        if root == "logout" and method == "POST":
            self.sessions.pop(request.headers.get("X-Parse-Session-Token", ""), None)
            return httpx.Response(200, json={})
        if root == "requestPasswordReset" and method == "POST":
            self.password_resets.append((body or {}).get("email"))
            return httpx.Response(200, json={})
        if root == "schemas":
            return self._schemas(request, method, rest)

        return _error(404, ErrorCode.INVALID_CLASS_NAME, f"Unsupported route {method} {request.url.path}")

    def _dispatch_user(self, method, object_id, body, params) -> httpx.Response:
        if method == "GET":
            return self._get("_User", object_id, params)
        if method == "PUT":
            return self._update("_User", object_id, body or {})
        if method == "DELETE":
            return self._delete("_User", object_id)
        return _error(400, ErrorCode.COMMAND_UNAVAILABLE, "Unsupported user operation")

    # -- Objects --

    def _create(self, class_name: str, body: Dict[str, Any], object_id: Optional[str] = None) -> httpx.Response:
        object_id = object_id or _new_id()
        now = _now()
        record: Dict[str, Any] = {"objectId": object_id, "createdAt": now, "updatedAt": now}
        self.classes.setdefault(class_name, {})[object_id] = record
        error = self._apply_body(class_name, record, body)
        if error is not None:
            del self.classes[class_name][object_id]
            return error
        return httpx.Response(201, json={"objectId": object_id, "createdAt": now})

    def _update(self, class_name: str, object_id: str, body: Dict[str, Any]) -> httpx.Response:
        record = self.classes.get(class_name, {}).get(object_id)
        if record is None:
            return _error(404, ErrorCode.OBJECT_NOT_FOUND, "Object not found.")
        error = self._apply_body(class_name, record, body)
        if error is not None:
            return error
        record["updatedAt"] = _now()
        return httpx.Response(200, json={"updatedAt": record["updatedAt"]})

    def _delete(self, class_name: str, object_id: str) -> httpx.Response:
        objects = self.classes.get(class_name, {})
        if objects.pop(object_id, None) is None:
            return _error(404, ErrorCode.OBJECT_NOT_FOUND, "Object not found.")
        for rel_key in [k for k in self.relations if k[:2] == (class_name, object_id)]:
            del self.relations[rel_key]
        return httpx.Response(200, json={})

    def _get(self, class_name: str, object_id: str, params: Dict[str, str]) -> httpx.Response:
        record = self.classes.get(class_name, {}).get(object_id)
        if record is None:
            return _error(404, ErrorCode.OBJECT_NOT_FOUND, "Object not found.")
        return httpx.Response(200, json=self._render(class_name, record, params))

    def _render(self, class_name: str, record: Dict[str, Any], params: Dict[str, str]) -> Dict[str, Any]:
        data = copy.deepcopy(record)
        if class_name == "_User":
            data.pop("password", None)
        for path in filter(None, params.get("include", "").split(",")):
            pointer = data.get(path)
            if isinstance(pointer, dict) and pointer.get("__type") == "Pointer":
                target = self.classes.get(pointer["className"], {}).get(pointer.get("objectId"))
                if target is not None:
                    data[path] = {"__type": "Object", "className": pointer["className"],
                                  **copy.deepcopy(target)}
        keys = [k for k in params.get("keys", "").split(",") if k]
        if keys:
            always = {"objectId", "createdAt", "updatedAt", "ACL"}
            data = {k: v for k, v in data.items() if k in always or k in keys}
        return data

    def _apply_body(self, class_name: str, record: Dict[str, Any], body: Dict[str, Any]) -> Optional[httpx.Response]:
        for key, value in body.items():
            if key in ("objectId", "createdAt", "updatedAt"):
                continue
            if not isinstance(value, dict) or "__op" not in value:
                record[key] = copy.deepcopy(value)
                continue
            op = value["__op"]
            current = record.get(key)
            if op == "Delete":
                record.pop(key, None)
            elif op == "Increment":
                if current is not None and not isinstance(current, (int, float)):
                    return _error(400, ErrorCode.INCORRECT_TYPE, f"Cannot increment {key}")
                record[key] = (current or 0) + value["amount"]
            elif op in ("Add", "AddUnique", "Remove"):
                if current is not None and not isinstance(current, list):
                    return _error(400, ErrorCode.INCORRECT_TYPE, f"{key} is not an array")
                items = list(current or [])
                for obj in value.get("objects", []):
                    if op == "Add":
                        items.append(obj)
                    elif op == "AddUnique" and not any(_same(obj, i) for i in items):
                        items.append(obj)
                    elif op == "Remove":
                        items = [i for i in items if not _same(obj, i)]
                record[key] = items
            elif op in ("AddRelation", "RemoveRelation", "Batch"):
                ops = value["ops"] if op == "Batch" else [value]
                for sub in ops:
                    self._apply_relation(class_name, record, key, sub)
            else:
                return _error(400, ErrorCode.INVALID_JSON, f"Unknown operation {op}")
        return None

    def _apply_relation(self, class_name: str, record: Dict[str, Any], key: str, op: Dict[str, Any]) -> None:
        members = self.relations.setdefault((class_name, record["objectId"], key), [])
        for pointer in op.get("objects", []):
            member = (pointer["className"], pointer.get("objectId"))
            record[key] = {"__type": "Relation", "className": member[0]}
            if op["__op"] == "AddRelation" and member not in members:
                members.append(member)
            elif op["__op"] == "RemoveRelation" and member in members:
                members.remove(member)

    # -- Queries --

    def _find(self, class_name: str, params: Dict[str, str]) -> httpx.Response:
        try:
            where = json.loads(params["where"]) if "where" in params else {}
        except ValueError:
            return _error(400, ErrorCode.INVALID_JSON, "Invalid where")
        records = list(self.classes.get(class_name, {}).values())
        try:
            matched = [r for r in records if self._matches(r, where)]
        except (KeyError, TypeError) as e:
            return _error(400, ErrorCode.INVALID_QUERY, f"Invalid query: {e}")

        for key in reversed([k for k in params.get("order", "").split(",") if k]):
            descending = key.startswith("-")
            field = key.lstrip("-")
            matched.sort(
                key=lambda r: (r.get(field) is None, _comparable(r.get(field))),
                reverse=descending,
            )
        matched = self._sort_by_distance(matched, where)

        total = len(matched)
        skip = int(params.get("skip", 0))
        limit = int(params["limit"]) if "limit" in params else 100
        page = matched[skip:skip + limit] if limit > 0 else []
        result: Dict[str, Any] = {"results": [self._render(class_name, r, params) for r in page]}
        if params.get("count") in ("1", "true"):
            result["count"] = total
        return httpx.Response(200, json=result)

    def _matches(self, record: Dict[str, Any], where: Dict[str, Any]) -> bool:
        for key, constraint in where.items():
            if key == "$relatedTo":
                parent = constraint["object"]
                members = self.relations.get(
                    (parent["className"], parent.get("objectId"), constraint["key"]), []
                )
                if not any(m[1] == record["objectId"] for m in members):
                    return False
                continue
            value = record.get(key)
            if isinstance(constraint, dict) and any(k.startswith("$") for k in constraint):
                if not self._matches_operators(value, constraint):
                    return False
            elif isinstance(value, list) and not isinstance(constraint, list):
                if not any(_same(item, constraint) for item in value):
                    return False
            elif not _same(value, constraint):
                return False
        return True

    def _matches_operators(self, value: Any, constraint: Dict[str, Any]) -> bool:
        current = _comparable(value)
        for op, operand in constraint.items():
            target = _comparable(operand)
            if op == "$ne":
                if current == target:
                    return False
            elif op in ("$lt", "$lte", "$gt", "$gte"):
                if current is None:
                    return False
                if op == "$lt" and not current < target:
                    return False
                if op == "$lte" and not current <= target:
                    return False
                if op == "$gt" and not current > target:
                    return False
                if op == "$gte" and not current >= target:
                    return False
            elif op == "$in":
                candidates = [_comparable(o) for o in operand]
                values = value if isinstance(value, list) else [value]
                if not any(_comparable(v) in candidates for v in values):
                    return False
            elif op == "$nin":
                if current in [_comparable(o) for o in operand]:
                    return False
            elif op == "$all":
                values = [_comparable(v) for v in (value or [])]
                if not all(_comparable(o) in values for o in operand):
                    return False
            elif op == "$exists":
                if (value is not None) != bool(operand):
                    return False
            elif op == "$regex":
                flags = re.IGNORECASE if "i" in constraint.get("$options", "") else 0
                if not isinstance(value, str) or not re.search(operand, value, flags):
                    return False
            elif op == "$options":
                continue
            elif op == "$nearSphere":
                if not isinstance(value, dict):
                    return False
                distance = _distance_km(operand, value)
                if "$maxDistanceInKilometers" in constraint and distance > constraint["$maxDistanceInKilometers"]:
                    return False
                if "$maxDistanceInMiles" in constraint and distance * _MILES_PER_KM > constraint["$maxDistanceInMiles"]:
                    return False
            elif op in ("$maxDistanceInKilometers", "$maxDistanceInMiles"):
                continue
            elif op == "$within":
                southwest, northeast = operand["$box"]
                if not isinstance(value, dict):
                    return False
                if not (southwest["latitude"] <= value["latitude"] <= northeast["latitude"]
                        and southwest["longitude"] <= value["longitude"] <= northeast["longitude"]):
                    return False
            else:
                raise KeyError(op)
        return True

    @staticmethod
    def _sort_by_distance(records: List[Dict[str, Any]], where: Dict[str, Any]) -> List[Dict[str, Any]]:
        for key, constraint in where.items():
            if isinstance(constraint, dict) and "$nearSphere" in constraint:
                origin = constraint["$nearSphere"]
                return sorted(records, key=lambda r: _distance_km(origin, r[key]))
        return records

    # -- Files --

    def _save_file(self, name: str, body: Dict[str, Any]) -> httpx.Response:
        if "base64" not in body:
            return _error(400, ErrorCode.INVALID_JSON, "Missing file data")
        stored_name = f"{_new_id()}_{name}"
        self.files[stored_name] = base64.b64decode(body["base64"])
        return httpx.Response(201, json={"name": stored_name, "url": f"https://files.test/{stored_name}"})

    def _delete_file(self, request: httpx.Request, name: str) -> httpx.Response:
        if not self._is_master(request):
            return _error(403, ErrorCode.OPERATION_FORBIDDEN, "Master key required")
        if self.files.pop(name, None) is None:
            return _error(404, ErrorCode.FILE_DELETE_ERROR, "File not found")
        return httpx.Response(200, json={})

    def _is_master(self, request: httpx.Request) -> bool:
        key = request.headers.get("X-Parse-Master-Key")
        return key is not None and (self.master_key is None or key == self.master_key)

    # -- Functions --

    def _run_function(self, name: str, params: Dict[str, Any]) -> httpx.Response:
        func = self.functions.get(name)
        if func is None:
            return _error(400, ErrorCode.SCRIPT_FAILED, f'Invalid function: "{name}"')
        return httpx.Response(200, json={"result": func(params)})

    # -- Users --

    def _sign_up(self, body: Dict[str, Any]) -> httpx.Response:
        username, password = body.get("username"), body.get("password")
        if not username:
            return _error(400, ErrorCode.USERNAME_MISSING, "bad or missing username")
        if not password:
            return _error(400, ErrorCode.PASSWORD_MISSING, "password is required")
        if self._find_user(username) is not None:
            return _error(400, ErrorCode.USERNAME_TAKEN, "Account already exists for this username.")
        fields = {k: v for k, v in body.items() if k != "password"}
        response = self._create("_User", fields)
        if response.status_code != 201:
            return response
        data = response.json()
        self.passwords[data["objectId"]] = password
        data["sessionToken"] = self._open_session(data["objectId"])
        return httpx.Response(201, json=data)

    def _login(self, body: Dict[str, Any]) -> httpx.Response:
        record = self._find_user(body.get("username"))
        if record is None or self.passwords.get(record["objectId"]) != body.get("password"):
            return _error(404, ErrorCode.OBJECT_NOT_FOUND, "Invalid username/password.")
        data = self._render("_User", record, {})
        data["sessionToken"] = self._open_session(record["objectId"])
        return httpx.Response(200, json=data)

    def _me(self, request: httpx.Request) -> httpx.Response:
        token = request.headers.get("X-Parse-Session-Token")
        user_id = self.sessions.get(token or "")
        record = self.classes.get("_User", {}).get(user_id or "")
        if record is None:
            return _error(400, ErrorCode.INVALID_SESSION_TOKEN, "Invalid session token")
        data = self._render("_User", record, {})
        data["sessionToken"] = token
        return httpx.Response(200, json=data)

    def _find_user(self, username: Optional[str]) -> Optional[Dict[str, Any]]:
        for record in self.classes.get("_User", {}).values():
            if record.get("username") == username:
                return record
        return None

    def _open_session(self, user_id: str) -> str:
        token = "r:" + uuid.uuid4().hex
        self.sessions[token] = user_id
        return token

    # -- Schemas --

    def _schemas(self, request: httpx.Request, method: str, rest: List[str]) -> httpx.Response:
        if not self._is_master(request):
            return _error(403, ErrorCode.OPERATION_FORBIDDEN, "Master key required")
        if method == "GET" and not rest:
            return httpx.Response(200, json={"results": [{"className": c} for c in self.classes]})
        if method == "DELETE" and len(rest) == 1:
            if self.classes.get(rest[0]):
                return _error(400, 255, f"Class {rest[0]} is not empty, contains objects.")
            self.classes.pop(rest[0], None)
            return httpx.Response(200, json={})
        return _error(400, ErrorCode.COMMAND_UNAVAILABLE, "Unsupported schema operation")


TEST_SERVER_URL = "https://parse.test/parse"


def make_test_client(server: FakeParseServer, **settings) -> ParseClient:
    """Client wired to ``server``; ``settings`` override the defaults."""
    settings.setdefault("application_id", server.application_id or "test-app")
    settings.setdefault("server_url", TEST_SERVER_URL)
    if server.master_key:
        settings.setdefault("master_key", server.master_key)
    return ParseClient(transport=server.transport(), **settings)


def generate_test_class_name(prefix: str = "TestObject") -> str:
    """Class name unique to this run."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


async def delete_all_objects(class_name: str, client: Optional[ParseClient] = None) -> None:
    """Delete every object of ``class_name``; failures are logged and skipped."""
    options = RequestOptions(use_master_key=True)
    try:
        results = await ParseQuery(class_name, client=client).limit(1000).find(options=options)
    except Exception as e:
        logger.warning("Failed to query %s for cleanup: %s", class_name, e)
        return

    for obj in results:
        try:
            await obj.delete(options=options)
        except Exception as e:
            logger.warning("Failed to delete %s %s: %s", class_name, obj.object_id, e)


async def purge_all_classes(client: Optional[ParseClient] = None) -> None:
    """Empty and drop every non-system class; failures are logged and skipped."""
    active = get_client(client)
    options = RequestOptions(use_master_key=True)
    try:
        response = await active.request(HTTPMethod.GET, "schemas", options=options)
    except Exception as e:
        logger.warning("Failed to list classes for cleanup: %s", e)
        return

    for schema in response.data.get("results", []):
        class_name = schema.get("className", "")
        if not class_name or class_name.startswith("_"):
            continue
        await delete_all_objects(class_name, client=active)
        try:
            await active.request(HTTPMethod.DELETE, f"schemas/{class_name}", options=options)
        except Exception as e:
            logger.warning("Failed to drop class %s: %s", class_name, e)
