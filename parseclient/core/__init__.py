from parseclient.core.classes import ParseACL, ParseGeoPoint
from parseclient.core.config import ClientConfig
from parseclient.core.exceptions import (CircularReferenceError, ConfigError,
                                         ConnectivityError, ErrorCode,
                                         NotInitialized, ObjectNotFound,
                                         ParseError, PreconditionError,
                                         RemoteError, ValidationError)
from parseclient.core.interfaces import AbstractStorage, AbstractWebSocketClient
from parseclient.core.operations import (AddOperation, AddUniqueOperation,
                                         FieldOperation, IncrementOperation,
                                         RelationOperation, RemoveOperation,
                                         SetOperation, UnsetOperation,
                                         merge_operations)

__all__ = [
    # Value types
    "ParseACL",
    "ParseGeoPoint",
    # Configuration
    "ClientConfig",
    # Errors
    "ErrorCode",
    "ParseError",
    "ValidationError",
    "PreconditionError",
    "RemoteError",
    "ObjectNotFound",
    "ConnectivityError",
    "NotInitialized",
    "ConfigError",
    "CircularReferenceError",
    # Interfaces
    "AbstractStorage",
    "AbstractWebSocketClient",
    # Field operations
    "FieldOperation",
    "SetOperation",
    "UnsetOperation",
    "IncrementOperation",
    "AddOperation",
    "AddUniqueOperation",
    "RemoveOperation",
    "RelationOperation",
    "merge_operations",
]
