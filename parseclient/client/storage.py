from typing import Dict, Optional

from parseclient.core.interfaces import AbstractStorage


class InMemoryStorage(AbstractStorage):
    """Process-local storage; contents are lost when the process exits."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    async def set_string(self, key: str, value: str) -> None:
        self._values[key] = value

    async def get_string(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def remove(self, key: str) -> None:
        self._values.pop(key, None)

    async def clear(self) -> None:
        self._values.clear()
