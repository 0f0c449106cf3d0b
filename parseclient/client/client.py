import logging
from typing import Any, Dict, Optional

import httpx
import pydantic

from parseclient.core.config import ClientConfig
from parseclient.core.context_storage import current_client
from parseclient.core.exceptions import ConfigError, NotInitialized
from parseclient.core.interfaces import AbstractStorage, WebSocketFactory
from parseclient.client.transport import (ParseResponse, RequestDispatcher,
                                          RequestOptions)

logger = logging.getLogger(__name__)


class ParseClient:
    """
    One configured connection to a backend.

    Owns the configuration, the request dispatcher (and through it the
    ``httpx.AsyncClient``), the optional key-value storage used for the
    current user session and the optional WebSocket factory for live queries.

    Usage:
        async with ParseClient(application_id="app", server_url="https://host/parse") as client:
            obj = ParseObject("GameScore", client=client)
            obj.set("score", 1337)
            await obj.save()
    """

    def __init__(
        self,
        storage: Optional[AbstractStorage] = None,
        websocket_factory: Optional[WebSocketFactory] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **settings,
    ):
        try:
            self.config = ClientConfig(**settings)
        except pydantic.ValidationError as e:
            raise NotInitialized(f"Invalid client configuration: {e}") from e
        self.storage = storage
        self.websocket_factory = websocket_factory
        self.dispatcher = RequestDispatcher(self.config, transport=transport)
        self.current_user = None
        self._token = None

    def configure(self, **kwargs) -> None:
        """
        Update settings in place.

        Raises AttributeError for keys ClientConfig does not define.
        """
        try:
            self.config.configure(**kwargs)
        except pydantic.ValidationError as e:
            raise NotInitialized(f"Invalid client configuration: {e}") from e

    def activate(self) -> "ParseClient":
        """Make this the client used when none is passed explicitly."""
        self._token = current_client.set(self)
        return self

    def deactivate(self) -> None:
        if self._token is not None:
            current_client.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "ParseClient":
        return self.activate()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.deactivate()
        await self.aclose()

    async def aclose(self) -> None:
        await self.dispatcher.aclose()

    async def request(
        self,
        method: str,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        options: Optional[RequestOptions] = None,
    ) -> ParseResponse:
        return await self.dispatcher.request(method, path, data=data, options=options)

    def set_master_key(self, master_key: Optional[str]) -> None:
        self.config.master_key = master_key

    def set_request_headers(self, headers: Dict[str, str]) -> None:
        self.config.request_headers = dict(headers)

    def require_storage(self) -> AbstractStorage:
        if self.storage is None:
            raise ConfigError("No storage configured for this client")
        return self.storage

    def require_websocket_factory(self) -> WebSocketFactory:
        if self.websocket_factory is None:
            raise ConfigError("No WebSocket factory configured for this client")
        return self.websocket_factory

    def __repr__(self):
        return (
            f"<ParseClient application_id={self.config.application_id!r} "
            f"server_url={self.config.server_url!r}>"
        )


def configure(**settings) -> ParseClient:
    """
    Create a client and make it the active one for the current context.

    Accepts the ClientConfig fields plus ``storage``, ``websocket_factory``
    and ``transport``.
    """
    client = ParseClient(**settings)
    client.activate()
    logger.debug("Configured client for %s", client.config.server_url)
    return client


def get_client(client: Optional[ParseClient] = None) -> ParseClient:
    if client is not None:
        return client
    active = current_client.get()
    if active is None:
        raise NotInitialized()
    return active
