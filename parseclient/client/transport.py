import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from parseclient.core.config import ClientConfig
from parseclient.core.exceptions import (ConnectivityError, ErrorCode,
                                         ParseError, RemoteError,
                                         error_from_response)
from parseclient.core.types import HTTPMethod

logger = logging.getLogger(__name__)

APPLICATION_ID_HEADER = "X-Parse-Application-Id"
CLIENT_KEY_HEADER = "X-Parse-Client-Key"
MASTER_KEY_HEADER = "X-Parse-Master-Key"
SESSION_TOKEN_HEADER = "X-Parse-Session-Token"
INSTALLATION_ID_HEADER = "X-Parse-Installation-Id"
REQUEST_ID_HEADER = "X-Parse-Request-Id"
CLOUD_CONTEXT_HEADER = "X-Parse-Cloud-Context"


@dataclass(frozen=True)
class RequestOptions:
    use_master_key: bool = False
    session_token: Optional[str] = None
    installation_id: Optional[str] = None
    context: Optional[Dict[str, Any]] = None


@dataclass
class ParseResponse:
    data: Dict[str, Any]
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


def _parse_error(resp: httpx.Response) -> ParseError:
    """Build the typed error for a failed response."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        return error_from_response(data, status_code=resp.status_code)
    return RemoteError(
        f"HTTP {resp.status_code}: {resp.text or resp.reason_phrase}",
        code=ErrorCode.CONNECTION_FAILED,
        status_code=resp.status_code,
    )


class RequestDispatcher:
    """
    Sends authenticated requests to the backend.

    Holds the shared ``httpx.AsyncClient``; timeouts are fixed here once.
    Failures without a response and 5xx responses are retried with
    exponential backoff, up to ``request_attempt_limit`` attempts in total.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        timeout = httpx.Timeout(
            connect=config.connect_timeout,
            read=config.read_timeout,
            write=config.write_timeout,
            pool=config.connect_timeout,
        )
        self._http = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def build_url(self, path: str) -> str:
        return f"{self.config.server_url}/{path.lstrip('/')}"

    def build_headers(self, options: RequestOptions, method: str) -> Dict[str, str]:
        config = self.config
        headers = {APPLICATION_ID_HEADER: config.application_id}

        if config.client_key:
            headers[CLIENT_KEY_HEADER] = config.client_key

        if options.use_master_key and config.master_key:
            headers[MASTER_KEY_HEADER] = config.master_key
            headers.pop(CLIENT_KEY_HEADER, None)

        if options.session_token:
            headers[SESSION_TOKEN_HEADER] = options.session_token

        if options.installation_id:
            headers[INSTALLATION_ID_HEADER] = options.installation_id

        if options.context is not None:
            headers[CLOUD_CONTEXT_HEADER] = json.dumps(options.context)

        if config.idempotency and method in (HTTPMethod.POST, HTTPMethod.PUT):
            headers[REQUEST_ID_HEADER] = str(uuid.uuid4())

        headers.update(config.request_headers)
        return headers

    def retry_delay(self, attempt: int) -> float:
        """Delay in seconds before retrying after failed attempt ``attempt``."""
        base = self.config.base_retry_delay_ms
        return base * (2 ** attempt) * (0.5 + 0.5 * (attempt / 10)) / 1000.0

    def should_retry(self, error: ParseError, attempt: int) -> bool:
        if attempt >= self.config.request_attempt_limit - 1:
            return False
        return error.status_code is None or error.status_code >= 500

    async def request(
        self,
        method: str,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        options: Optional[RequestOptions] = None,
    ) -> ParseResponse:
        method = HTTPMethod(method.upper())
        options = options or RequestOptions()
        url = self.build_url(path)
        # Built once so that retries reuse the same idempotency token.
        headers = self.build_headers(options, method)

        attempt = 0
        while True:
            try:
                return await self._send(method, url, data, headers)
            except ParseError as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.retry_delay(attempt)
                logger.warning(
                    "%s %s failed (attempt %d): %s; retrying in %.3fs",
                    method.value,
                    path,
                    attempt + 1,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _send(
        self,
        method: HTTPMethod,
        url: str,
        data: Optional[Dict[str, Any]],
        headers: Dict[str, str],
    ) -> ParseResponse:
        params = None
        body = None
        if method == HTTPMethod.GET:
            params = self._query_params(data)
        elif data is not None:
            body = data

        logger.debug("%s %s", method.value, url)
        try:
            resp = await self._http.request(
                method.value, url, params=params, json=body, headers=headers
            )
        except httpx.TimeoutException as e:
            raise ConnectivityError("Request timed out", code=ErrorCode.TIMEOUT) from e
        except httpx.TransportError as e:
            raise ConnectivityError(
                str(e) or ConnectivityError.default_message,
                code=ErrorCode.CONNECTION_FAILED,
            ) from e

        if resp.status_code >= 400:
            raise _parse_error(resp)

        payload: Any = {}
        if resp.content:
            try:
                payload = resp.json()
            except ValueError as e:
                raise RemoteError(
                    "Invalid JSON in server response",
                    code=ErrorCode.INVALID_JSON,
                    status_code=resp.status_code,
                ) from e
        if not isinstance(payload, dict):
            payload = {"result": payload}
        return ParseResponse(
            data=payload, status_code=resp.status_code, headers=dict(resp.headers)
        )

    @staticmethod
    def _query_params(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not data:
            return None
        params = {}
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                params[key] = json.dumps(value, separators=(",", ":"))
            elif isinstance(value, bool):
                params[key] = "true" if value else "false"
            else:
                params[key] = value
        return params
