from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


class ClientConfig(BaseModel):
    """
    Settings for one client instance.

    Parameters:
    -----------
    application_id: str
        Application identifier, sent with every request
    server_url: str
        Server root, e.g. "https://example.com/parse" (trailing slash stripped)
    client_key: Optional[str]
        Client credential, sent unless the master key is in use
    master_key: Optional[str]
        Elevated credential, only sent when a request asks for it
    live_query_url: Optional[str]
        WebSocket URL for live queries; inferred from server_url when omitted
    idempotency: bool, default=False
        Attach a fresh X-Parse-Request-Id to POST and PUT requests
    request_attempt_limit: int, default=3
        Total attempts for a request failing with no response or a 5xx
    base_retry_delay_ms: int, default=125
        Base of the exponential retry delay
    request_headers: Dict[str, str]
        Extra headers added to every request
    connect_timeout, read_timeout, write_timeout: float, default=10.0
        Transport timeouts in seconds
    """

    application_id: str = Field(min_length=1)
    server_url: str = Field(min_length=1)
    client_key: Optional[str] = None
    master_key: Optional[str] = None
    live_query_url: Optional[str] = None
    idempotency: bool = False
    request_attempt_limit: int = Field(default=3, ge=1)
    base_retry_delay_ms: int = Field(default=125, ge=0)
    request_headers: Dict[str, str] = Field(default_factory=dict)
    connect_timeout: float = 10.0
    read_timeout: float = 10.0
    write_timeout: float = 10.0

    model_config = {"validate_assignment": True}

    @field_validator("server_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def resolved_live_query_url(self) -> str:
        if self.live_query_url:
            return self.live_query_url
        url = self.server_url
        if url.startswith("https://"):
            return "wss://" + url[len("https://"):]
        if url.startswith("http://"):
            return "ws://" + url[len("http://"):]
        return url

    def configure(self, **kwargs) -> None:
        for key, value in kwargs.items():
            if key in type(self).model_fields:
                setattr(self, key, value)
            else:
                raise AttributeError(f"Invalid configuration key: {key}")
