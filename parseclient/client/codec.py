"""
Conversion between Python values and the backend's JSON wire format.

``encode`` walks a value and produces plain JSON data, tagging dates,
entities, files, geo points and relations with ``__type``. ``decode`` is the
inverse and hydrates entities bound to a client.
"""
import datetime
import logging
from typing import Any, Optional, Set

from parseclient.core.classes import ParseACL, ParseGeoPoint
from parseclient.core.exceptions import (CircularReferenceError, ErrorCode,
                                         ValidationError)
from parseclient.core.operations import (AddOperation, AddUniqueOperation,
                                         FieldOperation, IncrementOperation,
                                         RelationOperation, RemoveOperation,
                                         SetOperation, UnsetOperation)

logger = logging.getLogger(__name__)


class EncodeContext:
    """
    State of one top-level ``encode`` call.

    Records the identifiers of the entities on the current full-encode path.
    Siblings may repeat; an entity reached again from inside itself may not.
    """

    def __init__(self):
        self._path: Set[str] = set()

    def check(self, key: str) -> None:
        if key in self._path:
            raise CircularReferenceError(
                f"Circular reference detected while encoding {key!r}"
            )

    def enter(self, key: str) -> None:
        self.check(key)
        self._path.add(key)

    def leave(self, key: str) -> None:
        self._path.discard(key)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def format_date(value: datetime.datetime) -> str:
    """UTC ISO-8601 with a ``Z`` suffix; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    else:
        value = value.astimezone(datetime.timezone.utc)
    timespec = "milliseconds" if value.microsecond % 1000 == 0 else "microseconds"
    return value.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


def parse_date(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def encode_date(value: datetime.datetime) -> dict:
    return {"__type": "Date", "iso": format_date(value)}


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode(value: Any, full: bool = False, context: Optional[EncodeContext] = None) -> Any:
    """
    Encode ``value`` for the wire.

    Entities become pointers unless ``full`` is set, in which case they are
    written out with all their fields (nested entities included).

    Raises:
        CircularReferenceError: an entity is reached again while it is being
            fully encoded.
        ValidationError: the value has no wire representation.
    """
    from parseclient.client.files import ParseFile
    from parseclient.client.objects import ParseObject
    from parseclient.client.relation import ParseRelation

    if context is None:
        context = EncodeContext()

    if value is None:
        return None

    # bool is an int subclass; both pass through
    if isinstance(value, (str, int, float)):
        return value

    if isinstance(value, datetime.datetime):
        return encode_date(value)

    if isinstance(value, ParseObject):
        if full:
            return value._encode_state(full=True, context=context)
        context.check(value._identity_key())
        return value.to_pointer()

    if isinstance(value, (ParseFile, ParseGeoPoint, ParseRelation, ParseACL)):
        return value.to_json()

    if isinstance(value, FieldOperation):
        return encode_operation(value, context=context)

    if isinstance(value, (list, tuple)):
        return [encode(item, full=full, context=context) for item in value]

    if isinstance(value, dict):
        return {
            str(key): encode(item, full=full, context=context)
            for key, item in value.items()
        }

    raise ValidationError(
        f"Cannot encode value of type {type(value).__name__}",
        code=ErrorCode.INCORRECT_TYPE,
    )


def encode_operation(op: FieldOperation, context: Optional[EncodeContext] = None) -> Any:
    if context is None:
        context = EncodeContext()

    if isinstance(op, SetOperation):
        return encode(op.value, context=context)

    if isinstance(op, UnsetOperation):
        return {"__op": "Delete"}

    if isinstance(op, IncrementOperation):
        return {"__op": "Increment", "amount": op.amount}

    if isinstance(op, AddOperation):
        return {"__op": "Add", "objects": encode(list(op.objects), context=context)}

    if isinstance(op, AddUniqueOperation):
        return {"__op": "AddUnique", "objects": encode(list(op.objects), context=context)}

    if isinstance(op, RemoveOperation):
        return {"__op": "Remove", "objects": encode(list(op.objects), context=context)}

    if isinstance(op, RelationOperation):
        adds = {
            "__op": "AddRelation",
            "objects": encode(list(op.objects_to_add), context=context),
        }
        removes = {
            "__op": "RemoveRelation",
            "objects": encode(list(op.objects_to_remove), context=context),
        }
        if op.objects_to_add and op.objects_to_remove:
            return {"__op": "Batch", "ops": [adds, removes]}
        if op.objects_to_remove:
            return removes
        return adds

    raise TypeError(f"Unknown field operation: {type(op).__name__}")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode(value: Any, client=None) -> Any:
    """Decode wire JSON, hydrating tagged values. Entities are bound to ``client``."""
    from parseclient.client.files import ParseFile
    from parseclient.client.objects import ParseObject
    from parseclient.client.relation import ParseRelation

    if isinstance(value, list):
        return [decode(item, client=client) for item in value]

    if not isinstance(value, dict):
        return value

    type_tag = value.get("__type")

    if type_tag == "Date":
        return parse_date(value.get("iso"))

    if type_tag == "Pointer":
        return ParseObject.create_without_data(
            value["className"], value.get("objectId"), client=client
        )

    if type_tag == "Object":
        return ParseObject.from_json(value["className"], value, client=client)

    if type_tag == "File":
        return ParseFile.from_json(value, client=client)

    if type_tag == "GeoPoint":
        return ParseGeoPoint.from_json(value)

    if type_tag == "Relation":
        return ParseRelation.from_json(value)

    if type_tag is not None:
        logger.debug("Decoding value with unknown __type %r as a mapping", type_tag)

    return {key: decode(item, client=client) for key, item in value.items()}
