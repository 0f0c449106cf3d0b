import base64
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, Optional

from parseclient.core.exceptions import ErrorCode, ParseError
from parseclient.core.types import HTTPMethod
from parseclient.client.client import ParseClient, get_client
from parseclient.client.transport import RequestOptions

logger = logging.getLogger(__name__)


class ParseFile:
    """Wraps a file stored by the backend.

    Usage:
        # From bytes
        f = ParseFile.from_bytes("resume.txt", b"My resume")

        # From base64
        f = ParseFile.from_base64("photo.png", encoded, content_type="image/png")

        # From a path on disk
        f = ParseFile.from_path("/path/to/report.pdf")

        await f.save()
        obj.set("attachment", f)
    """

    def __init__(
        self,
        name: str,
        data: Optional[bytes] = None,
        base64_data: Optional[str] = None,
        content_type: Optional[str] = None,
        url: Optional[str] = None,
        client: Optional[ParseClient] = None,
    ):
        if not name:
            raise ParseError("File name is required", code=ErrorCode.INVALID_FILE_NAME)
        self._name = name
        self._data = data
        self._base64 = base64_data
        self._content_type = (
            content_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        )
        self._url = url
        self._client = client

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: Optional[str] = None,
                   client: Optional[ParseClient] = None) -> "ParseFile":
        return cls(name, data=data, content_type=content_type, client=client)

    @classmethod
    def from_base64(cls, name: str, data: str, content_type: Optional[str] = None,
                    client: Optional[ParseClient] = None) -> "ParseFile":
        return cls(name, base64_data=data, content_type=content_type, client=client)

    @classmethod
    def from_path(cls, path, name: Optional[str] = None, content_type: Optional[str] = None,
                  client: Optional[ParseClient] = None) -> "ParseFile":
        p = Path(path)
        return cls(name or p.name, data=p.read_bytes(), content_type=content_type, client=client)

    @classmethod
    def from_json(cls, data: Dict[str, Any], client: Optional[ParseClient] = None) -> "ParseFile":
        """Create from a ``{"__type": "File"}`` wire value."""
        return cls(data["name"], url=data.get("url"), client=client)

    def to_json(self) -> Dict[str, Any]:
        result = {"__type": "File", "name": self._name}
        if self._url is not None:
            result["url"] = self._url
        return result

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def content_type(self) -> str:
        return self._content_type

    @property
    def is_saved(self) -> bool:
        return self._url is not None

    @property
    def client(self) -> ParseClient:
        return get_client(self._client)

    def _encoded_data(self) -> Optional[str]:
        if self._base64 is not None:
            return self._base64
        if self._data is not None:
            return base64.b64encode(self._data).decode("ascii")
        return None

    async def save(self, options: Optional[RequestOptions] = None) -> "ParseFile":
        """Upload the file. A saved file is not uploaded again."""
        if self.is_saved:
            return self
        payload = self._encoded_data()
        if payload is None:
            raise ParseError(
                "Cannot save a file without data", code=ErrorCode.UNSAVED_FILE_ERROR
            )
        response = await self.client.request(
            HTTPMethod.POST,
            f"files/{self._name}",
            data={"base64": payload, "_ContentType": self._content_type},
            options=options,
        )
        self._url = response.data.get("url")
        self._name = response.data.get("name") or self._name
        logger.debug("Uploaded file %s", self._name)
        return self

    async def delete(self, options: Optional[RequestOptions] = None) -> None:
        if not self.is_saved:
            raise ParseError(
                "Cannot delete an unsaved file", code=ErrorCode.FILE_DELETE_ERROR
            )
        await self.client.request(
            HTTPMethod.DELETE,
            f"files/{self._name}",
            options=options or RequestOptions(use_master_key=True),
        )
        self._url = None

    def __eq__(self, other):
        if not isinstance(other, ParseFile):
            return NotImplemented
        if self is other:
            return True
        return self._url is not None and (self._name, self._url) == (other._name, other._url)

    def __hash__(self):
        if self._url is None:
            return id(self)
        return hash((self._name, self._url))

    def __repr__(self):
        status = "saved" if self.is_saved else "pending"
        return f"ParseFile({self._name!r}, {status})"
