from enum import Enum
from typing import FrozenSet


class HTTPMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


# Keys the generic setter refuses. "id" is accepted as an alias of objectId.
RESERVED_KEYS: FrozenSet[str] = frozenset(
    {"id", "objectId", "createdAt", "updatedAt", "ACL"}
)

# Keys handled by the object itself when hydrating from the wire.
SYSTEM_KEYS: FrozenSet[str] = frozenset(
    {"objectId", "createdAt", "updatedAt", "ACL", "__type", "className"}
)

ACL_KEY = "ACL"
