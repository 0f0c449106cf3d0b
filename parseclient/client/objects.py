import datetime
import logging
import uuid
from typing import (Any, ClassVar, Dict, Iterable, List, Mapping, Optional,
                    Type)

from parseclient.core.classes import ParseACL
from parseclient.core.exceptions import (ErrorCode, PreconditionError,
                                         ValidationError)
from parseclient.core.operations import (AddOperation, AddUniqueOperation,
                                         FieldOperation, RelationOperation,
                                         RemoveOperation, SetOperation,
                                         UnsetOperation, merge_operations)
from parseclient.core.types import ACL_KEY, RESERVED_KEYS, SYSTEM_KEYS, HTTPMethod
from parseclient.client.client import ParseClient, get_client
from parseclient.client.codec import (EncodeContext, decode, encode,
                                      format_date, parse_date)
from parseclient.client.transport import RequestOptions

logger = logging.getLogger(__name__)

_DELETE_OP = {"__op": "Delete"}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ParseObject:
    """
    A schemaless remote object.

    Values read back through ``get`` reflect local edits immediately; they are
    sent on the next ``save``. Subclasses bind themselves to a remote class by
    declaring ``parse_class_name`` and are used whenever that class is decoded.

    Usage:
        class GameScore(ParseObject):
            parse_class_name = "GameScore"

        score = GameScore()
        score.set("score", 1337)
        score.add_unique("tags", "arcade")
        await score.save()
    """

    parse_class_name: ClassVar[Optional[str]] = None
    _registry: ClassVar[Dict[str, Type["ParseObject"]]] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        name = cls.__dict__.get("parse_class_name")
        if name:
            ParseObject._registry[name] = cls

    def __init__(self, class_name: Optional[str] = None, client: Optional[ParseClient] = None):
        class_name = class_name or type(self).parse_class_name
        if not class_name:
            raise ValidationError(
                "A class name is required", code=ErrorCode.INVALID_CLASS_NAME
            )
        self._init_state(class_name, client)

    def _init_state(self, class_name: str, client: Optional[ParseClient]) -> None:
        self._class_name = class_name
        self._client = client
        self.object_id: Optional[str] = None
        self.local_id: Optional[str] = None
        self.created_at: Optional[datetime.datetime] = None
        self.updated_at: Optional[datetime.datetime] = None
        self._acl: Optional[ParseACL] = None
        self._server_data: Dict[str, Any] = {}
        self._pending: Dict[str, Any] = {}
        # dict used as an ordered set
        self._dirty: Dict[str, None] = {}

    # -- Construction --

    @classmethod
    def class_for(cls, class_name: str) -> Type["ParseObject"]:
        return ParseObject._registry.get(class_name, ParseObject)

    @classmethod
    def _hydrate(cls, class_name: str, client: Optional[ParseClient]) -> "ParseObject":
        inst = object.__new__(ParseObject.class_for(class_name))
        inst._init_state(class_name, client)
        return inst

    @classmethod
    def from_json(
        cls, class_name: str, data: Mapping[str, Any], client: Optional[ParseClient] = None
    ) -> "ParseObject":
        """Build an entity whose server fields are ``data``."""
        inst = cls._hydrate(class_name, client)
        inst._apply_server_data(data)
        return inst

    @classmethod
    def create_without_data(
        cls, class_name: str, object_id: Optional[str], client: Optional[ParseClient] = None
    ) -> "ParseObject":
        inst = cls._hydrate(class_name, client)
        inst.object_id = object_id
        return inst

    # -- Properties --

    @property
    def class_name(self) -> str:
        return self._class_name

    @property
    def client(self) -> ParseClient:
        return get_client(self._client)

    @property
    def acl(self) -> Optional[ParseACL]:
        return self._acl

    def set_acl(self, acl: Optional[ParseACL]) -> None:
        self._acl = acl
        self._dirty[ACL_KEY] = None

    @property
    def is_saved(self) -> bool:
        return self.object_id is not None

    @property
    def is_dirty(self) -> bool:
        return bool(self._dirty)

    @property
    def dirty_keys(self) -> List[str]:
        return list(self._dirty)

    def is_key_dirty(self, key: str) -> bool:
        return key in self._dirty

    def keys(self) -> List[str]:
        """Field names in the current local view."""
        names = [k for k in self._server_data if not self._is_unset(k)]
        names.extend(k for k in self._pending if k not in self._server_data)
        return names

    # -- Field access --

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._dirty:
            if key not in self._pending:
                return default
            value = self._pending[key]
            if isinstance(value, FieldOperation):
                return value.apply(self._server_data.get(key))
            return value
        return self._server_data.get(key, default)

    def get_as(self, key: str, *types: type) -> Any:
        """
        Read ``key`` and check its type.

        Raises:
            ValidationError: the value is present and not one of ``types``.
        """
        value = self.get(key)
        if value is not None and types and not isinstance(value, types):
            raise ValidationError(
                f"Field {key!r} holds {type(value).__name__}, "
                f"expected {' or '.join(t.__name__ for t in types)}",
                code=ErrorCode.INCORRECT_TYPE,
            )
        return value

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def set(self, key: str, value: Any) -> None:
        self._check_key(key)
        self._pending[key] = value
        self._dirty[key] = None

    def set_all(self, values: Mapping[str, Any]) -> "ParseObject":
        for key in values:
            self._check_key(key)
        for key, value in values.items():
            self.set(key, value)
        return self

    def unset(self, key: str) -> None:
        self._check_key(key)
        self._pending.pop(key, None)
        self._server_data.pop(key, None)
        self._dirty[key] = None

    def increment(self, key: str, amount: float = 1) -> None:
        if not _is_number(amount):
            raise ValidationError(
                "Increment amount must be a number", code=ErrorCode.INCORRECT_TYPE
            )
        current = self.get(key)
        if current is None:
            current = 0
        elif not _is_number(current):
            raise ValidationError(
                f"Cannot increment non-numeric field {key!r}",
                code=ErrorCode.INCORRECT_TYPE,
            )
        self.set(key, current + amount)

    def decrement(self, key: str, amount: float = 1) -> None:
        if not _is_number(amount):
            raise ValidationError(
                "Decrement amount must be a number", code=ErrorCode.INCORRECT_TYPE
            )
        self.increment(key, -amount)

    # -- Array operations --

    def add(self, key: str, item: Any) -> None:
        self._apply_operation(key, AddOperation((item,)))

    def add_all(self, key: str, items: Iterable[Any]) -> None:
        self._apply_operation(key, AddOperation(tuple(items)))

    def add_unique(self, key: str, item: Any) -> None:
        self._apply_operation(key, AddUniqueOperation((item,)))

    def add_all_unique(self, key: str, items: Iterable[Any]) -> None:
        self._apply_operation(key, AddUniqueOperation(tuple(items)))

    def remove(self, key: str, item: Any) -> None:
        self._apply_operation(key, RemoveOperation((item,)))

    def remove_all(self, key: str, items: Iterable[Any]) -> None:
        self._apply_operation(key, RemoveOperation(tuple(items)))

    def pending_operation(self, key: str) -> Optional[FieldOperation]:
        """The queued change on ``key`` expressed as a field operation."""
        if key not in self._dirty:
            return None
        if key not in self._pending:
            return UnsetOperation()
        value = self._pending[key]
        if isinstance(value, FieldOperation):
            return value
        return SetOperation(value)

    def _apply_operation(self, key: str, op: FieldOperation) -> None:
        self._check_key(key)
        merged = merge_operations(op, self.pending_operation(key))
        if isinstance(merged, SetOperation):
            self._pending[key] = merged.value
        elif isinstance(merged, UnsetOperation):
            self._pending.pop(key, None)
            self._server_data.pop(key, None)
        else:
            self._pending[key] = merged
        self._dirty[key] = None

    # -- Relations --

    def relation(self, key: str):
        from parseclient.client.relation import ParseRelation

        target = None
        current = self.get(key)
        if isinstance(current, ParseRelation):
            target = current.target_class_name
        pending = self._pending.get(key) if key in self._dirty else None
        if isinstance(pending, RelationOperation) and pending.target_class_name:
            target = pending.target_class_name
        return ParseRelation(self, key, target_class_name=target)

    # -- Network --

    def _request_options(self, options: Optional[RequestOptions]) -> RequestOptions:
        return options or RequestOptions()

    def _build_save_body(self) -> Dict[str, Any]:
        context = EncodeContext()
        body: Dict[str, Any] = {}
        for key in self._dirty:
            if key == ACL_KEY:
                body[ACL_KEY] = self._acl.to_json() if self._acl is not None else dict(_DELETE_OP)
            elif key in self._pending:
                body[key] = encode(self._pending[key], context=context)
            else:
                body[key] = dict(_DELETE_OP)
        return body

    async def save(self, options: Optional[RequestOptions] = None) -> "ParseObject":
        """
        Send every dirty field.

        Creates the object when it has no id yet, updates it otherwise.
        Dispatcher errors propagate and leave local state untouched.
        """
        body = self._build_save_body()
        if self.object_id is None:
            method, path = HTTPMethod.POST, f"classes/{self.class_name}"
        else:
            method, path = HTTPMethod.PUT, f"classes/{self.class_name}/{self.object_id}"

        response = await self.client.request(
            method, path, data=body, options=self._request_options(options)
        )
        self._handle_save_response(response.data)
        logger.debug("Saved %s %s", self.class_name, self.object_id)
        return self

    async def fetch(self, options: Optional[RequestOptions] = None) -> "ParseObject":
        self._require_object_id("fetch")
        response = await self.client.request(
            HTTPMethod.GET,
            f"classes/{self.class_name}/{self.object_id}",
            options=self._request_options(options),
        )
        self._replace_state(response.data)
        return self

    async def delete(self, options: Optional[RequestOptions] = None) -> None:
        self._require_object_id("delete")
        await self.client.request(
            HTTPMethod.DELETE,
            f"classes/{self.class_name}/{self.object_id}",
            options=self._request_options(options),
        )
        self._init_state(self._class_name, self._client)

    def _require_object_id(self, action: str) -> None:
        if self.object_id is None:
            raise PreconditionError(
                f"Cannot {action} an object without an objectId",
                code=ErrorCode.MISSING_OBJECT_ID,
            )

    # -- Server state --

    def _handle_save_response(self, data: Mapping[str, Any]) -> None:
        from parseclient.client.relation import ParseRelation

        was_new = self.object_id is None
        if data.get("objectId"):
            self.object_id = data["objectId"]
        if "createdAt" in data:
            self.created_at = parse_date(data["createdAt"])
            if was_new and "updatedAt" not in data:
                self.updated_at = self.created_at
        if "updatedAt" in data:
            self.updated_at = parse_date(data["updatedAt"])

        for key in self._dirty:
            if key == ACL_KEY:
                continue
            if key not in self._pending:
                self._server_data.pop(key, None)
                continue
            value = self._pending[key]
            if isinstance(value, RelationOperation):
                if not isinstance(self._server_data.get(key), ParseRelation):
                    self._server_data[key] = ParseRelation(
                        self, key, target_class_name=value.target_class_name
                    )
                continue
            if isinstance(value, FieldOperation):
                value = value.apply(self._server_data.get(key))
                if value is None:
                    continue
            self._server_data[key] = value

        self._pending.clear()
        self._dirty.clear()

        extra = {k: v for k, v in data.items() if k not in SYSTEM_KEYS}
        self._store_server_fields(extra)

    def _replace_state(self, data: Mapping[str, Any]) -> None:
        self._server_data.clear()
        self._pending.clear()
        self._dirty.clear()
        self._acl = None
        self._apply_server_data(data)

    def _apply_server_data(self, data: Mapping[str, Any]) -> None:
        if data.get("objectId"):
            self.object_id = data["objectId"]
        if "createdAt" in data:
            self.created_at = self._read_date(data["createdAt"])
        if "updatedAt" in data:
            self.updated_at = self._read_date(data["updatedAt"])
        if isinstance(data.get(ACL_KEY), dict):
            self._acl = ParseACL.from_json(data[ACL_KEY])
        self._store_server_fields({k: v for k, v in data.items() if k not in SYSTEM_KEYS})

    @staticmethod
    def _read_date(value: Any) -> Optional[datetime.datetime]:
        if isinstance(value, dict):
            value = value.get("iso")
        return parse_date(value)

    def _store_server_fields(self, fields: Mapping[str, Any]) -> None:
        from parseclient.client.relation import ParseRelation

        for key, raw in fields.items():
            value = decode(raw, client=self._client)
            if isinstance(value, ParseRelation):
                value.bind(self, key)
            self._server_data[key] = value

    # -- Encoding --

    def _identity_key(self) -> str:
        if self.object_id is not None:
            return self.object_id
        if self.local_id is None:
            self.local_id = "local" + uuid.uuid4().hex
        return self.local_id

    def to_pointer(self) -> Dict[str, Any]:
        pointer = {"__type": "Pointer", "className": self.class_name}
        if self.object_id is not None:
            pointer["objectId"] = self.object_id
        else:
            pointer["_localId"] = self._identity_key()
        return pointer

    def to_wire_format(self, full: bool = False) -> Dict[str, Any]:
        """
        Serialize the current local view of the object.

        With ``full`` the result is tagged as an ``Object`` and nested entities
        are written out completely instead of as pointers.
        """
        return self._encode_state(full=full, context=EncodeContext())

    def _encode_state(self, full: bool, context: EncodeContext) -> Dict[str, Any]:
        if not full:
            return self._encode_fields(full, context)
        key = self._identity_key()
        context.enter(key)
        try:
            data = self._encode_fields(full, context)
        finally:
            context.leave(key)
        data["__type"] = "Object"
        data["className"] = self.class_name
        return data

    def _encode_fields(self, full: bool, context: EncodeContext) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.object_id is not None:
            data["objectId"] = self.object_id
        if self.created_at is not None:
            data["createdAt"] = format_date(self.created_at)
        if self.updated_at is not None:
            data["updatedAt"] = format_date(self.updated_at)
        if self._acl is not None:
            data[ACL_KEY] = self._acl.to_json()
        for key in self.keys():
            data[key] = encode(self.get(key), full=full, context=context)
        return data

    # -- Helpers --

    def _is_unset(self, key: str) -> bool:
        return key in self._dirty and key not in self._pending

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationError("Field names must be non-empty strings")
        if key in RESERVED_KEYS:
            raise ValidationError(
                f"Cannot set reserved key: {key}", code=ErrorCode.INVALID_KEY_NAME
            )

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, ParseObject):
            return NotImplemented
        return (
            self.object_id is not None
            and self.object_id == other.object_id
            and self.class_name == other.class_name
        )

    def __hash__(self):
        # Stable across save; equal objects always share a class name.
        return hash(self.class_name)

    def __repr__(self):
        return f"<{type(self).__name__} {self.class_name}: {self.object_id or 'unsaved'}>"
