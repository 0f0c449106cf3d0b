"""
parseclient: An asyncio client for Parse-compatible REST object storage.
"""

from parseclient.client import (InMemoryStorage, LiveQueryClient,
                                LiveQueryEvent, ParseClient, ParseFile,
                                ParseObject, ParseQuery, ParseRelation,
                                ParseResponse, ParseUser, RequestDispatcher,
                                RequestOptions, configure, get_client, run)
from parseclient.core import (CircularReferenceError, ClientConfig,
                              ConfigError, ConnectivityError, ErrorCode,
                              NotInitialized, ObjectNotFound, ParseACL,
                              ParseError, ParseGeoPoint, PreconditionError,
                              RemoteError, ValidationError)

__all__ = [
    # Configuration
    "ClientConfig",
    "ParseClient",
    "configure",
    "get_client",
    # Objects
    "ParseObject",
    "ParseUser",
    "ParseFile",
    "ParseRelation",
    "ParseQuery",
    "ParseACL",
    "ParseGeoPoint",
    # Transport
    "RequestDispatcher",
    "RequestOptions",
    "ParseResponse",
    # Services
    "run",
    "InMemoryStorage",
    "LiveQueryClient",
    "LiveQueryEvent",
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
]

__version__ = "0.1.0"
