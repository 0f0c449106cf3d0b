"""
parseclient.client: objects, queries and transport for a Parse-compatible REST backend.
"""

from parseclient.client.client import ParseClient, configure, get_client
from parseclient.client.cloud import run
from parseclient.client.files import ParseFile
from parseclient.client.live_query import LiveQueryClient, LiveQueryEvent
from parseclient.client.objects import ParseObject
from parseclient.client.query import ParseQuery
from parseclient.client.relation import ParseRelation
from parseclient.client.storage import InMemoryStorage
from parseclient.client.transport import (ParseResponse, RequestDispatcher,
                                          RequestOptions)
from parseclient.client.users import ParseUser

__all__ = [
    # Client
    "ParseClient",
    "configure",
    "get_client",
    # Transport
    "RequestDispatcher",
    "RequestOptions",
    "ParseResponse",
    # Objects
    "ParseObject",
    "ParseUser",
    "ParseFile",
    "ParseRelation",
    "ParseQuery",
    # Services
    "run",
    "InMemoryStorage",
    "LiveQueryClient",
    "LiveQueryEvent",
]
