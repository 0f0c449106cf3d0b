import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

from parseclient.core.exceptions import ConfigError, ParseError, error_from_response
from parseclient.core.interfaces import AbstractWebSocketClient
from parseclient.client.client import ParseClient, get_client
from parseclient.client.objects import ParseObject
from parseclient.client.query import ParseQuery

logger = logging.getLogger(__name__)

OBJECT_EVENTS = frozenset({"create", "enter", "update", "leave", "delete"})


@dataclass
class LiveQueryEvent:
    """One message received from the live query server."""

    op: str
    request_id: Optional[int] = None
    object: Optional[ParseObject] = None
    original: Optional[ParseObject] = None
    error: Optional[ParseError] = None
    data: Dict[str, Any] = field(default_factory=dict)


class LiveQueryClient:
    """
    Subscribes to changes of objects matching a query.

    The socket comes from the client's ``websocket_factory``; the URL is the
    configured live query URL, or the server URL with its scheme switched to
    ws/wss.

    Usage:
        async with LiveQueryClient() as live:
            request_id = await live.subscribe(ParseQuery("Message"))
            async for event in live.events():
                print(event.op, event.object)
    """

    def __init__(self, client: Optional[ParseClient] = None, session_token: Optional[str] = None):
        self._client = client
        self.session_token = session_token
        self._socket: Optional[AbstractWebSocketClient] = None
        self._next_request_id = 1
        self.subscriptions: Dict[int, ParseQuery] = {}

    @property
    def client(self) -> ParseClient:
        return get_client(self._client)

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    async def connect(self) -> None:
        client = self.client
        factory = client.require_websocket_factory()
        url = client.config.resolved_live_query_url
        socket = factory()
        await socket.connect(url)
        self._socket = socket
        logger.debug("Live query socket open at %s", url)

        message: Dict[str, Any] = {
            "op": "connect",
            "applicationId": client.config.application_id,
        }
        if client.config.client_key:
            message["clientKey"] = client.config.client_key
        if client.config.master_key:
            message["masterKey"] = client.config.master_key
        if self.session_token:
            message["sessionToken"] = self.session_token
        await self._send(message)

    async def subscribe(self, query: ParseQuery) -> int:
        """Subscribe to ``query``; returns the request id used in its events."""
        request_id = self._next_request_id
        self._next_request_id += 1

        subscription: Dict[str, Any] = {"className": query.class_name, "where": query.where}
        params = query.build_parameters()
        if "keys" in params:
            subscription["keys"] = params["keys"].split(",")
        message: Dict[str, Any] = {"op": "subscribe", "requestId": request_id, "query": subscription}
        if self.session_token:
            message["sessionToken"] = self.session_token

        await self._send(message)
        self.subscriptions[request_id] = query
        return request_id

    async def unsubscribe(self, request_id: int) -> None:
        await self._send({"op": "unsubscribe", "requestId": request_id})
        self.subscriptions.pop(request_id, None)

    async def events(self) -> AsyncIterator[LiveQueryEvent]:
        socket = self._require_socket()
        async for raw in socket.messages():
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring non-JSON live query message: %r", raw)
                continue
            yield self._parse_event(data)

    def _parse_event(self, data: Dict[str, Any]) -> LiveQueryEvent:
        op = data.get("op", "")
        event = LiveQueryEvent(op=op, request_id=data.get("requestId"), data=data)
        if op in OBJECT_EVENTS:
            event.object = self._hydrate(data.get("object"), event.request_id)
            event.original = self._hydrate(data.get("original"), event.request_id)
        elif op == "error":
            event.error = error_from_response(data)
            logger.warning("Live query error: %s", event.error)
        return event

    def _hydrate(self, data: Optional[Dict[str, Any]], request_id: Optional[int]) -> Optional[ParseObject]:
        if not isinstance(data, dict):
            return None
        class_name = data.get("className")
        if not class_name:
            query = self.subscriptions.get(request_id)
            class_name = query.class_name if query else None
        if not class_name:
            return None
        return ParseObject.from_json(class_name, data, client=self._client)

    async def close(self) -> None:
        if self._socket is None:
            return
        socket, self._socket = self._socket, None
        self.subscriptions.clear()
        await socket.close()

    async def __aenter__(self) -> "LiveQueryClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_socket(self) -> AbstractWebSocketClient:
        if self._socket is None:
            raise ConfigError("Live query client is not connected")
        return self._socket

    async def _send(self, message: Dict[str, Any]) -> None:
        await self._require_socket().send(json.dumps(message))
