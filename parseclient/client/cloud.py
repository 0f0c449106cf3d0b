from typing import Any, Dict, Optional

from parseclient.core.types import HTTPMethod
from parseclient.client.client import ParseClient, get_client
from parseclient.client.codec import decode, encode
from parseclient.client.transport import RequestOptions


async def run(
    name: str,
    parameters: Optional[Dict[str, Any]] = None,
    options: Optional[RequestOptions] = None,
    client: Optional[ParseClient] = None,
) -> Any:
    """
    Call the server-side function ``name`` and return its decoded result.

    Usage:
        greeting = await run("hello", {"name": "world"})
    """
    active = get_client(client)
    response = await active.request(
        HTTPMethod.POST,
        f"functions/{name}",
        data=encode(parameters or {}),
        options=options,
    )
    return decode(response.data.get("result"), client=client)
