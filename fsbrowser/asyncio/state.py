import os
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiofiles
import aiofiles.os
import yaml

from fsbrowser.errors import StateError


class StateStore(ABC):
    """Abstract class for async key/value state store."""

    @abstractmethod
    async def fetch(self, key: str) -> Optional[dict[str, Any]]:
        """Fetch value.

        Parameters
        ----------
        key : str
            Record key.

        Returns
        -------
        Optional[dict[str, Any]]
            Stored value, ``None`` if missing.

        Raises
        ------
        StateError
            If the stored record cannot be read.
        """
        pass

    @abstractmethod
    async def save(self, key: str, value: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        pass


class YamlStateStore(StateStore):
    """State store persisted to a YAML file.

    Attributes
    ----------
    path : str
        Path to YAML file.
    """

    def __init__(self, path: str) -> None:
        self.path = os.path.expanduser(path)

    async def fetch(self, key: str) -> Optional[dict[str, Any]]:
        value = (await self._load()).get(key)
        if value is not None and not isinstance(value, dict):
            raise StateError(f"invalid record for '{key}'")
        return value

    async def save(self, key: str, value: dict[str, Any]) -> None:
        data = await self._load_or_reset()
        data[key] = value
        await self._dump(data)

    async def remove(self, key: str) -> None:
        data = await self._load_or_reset()
        if data.pop(key, None) is not None:
            await self._dump(data)

    async def _load(self) -> dict[str, Any]:
        if not await aiofiles.os.path.exists(self.path):
            return {}
        async with aiofiles.open(self.path) as f:
            text = await f.read()
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as err:
            raise StateError(f"failed to parse '{self.path}': {err}") from err
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StateError(f"'{self.path}' does not contain a mapping")
        return data

    async def _load_or_reset(self) -> dict[str, Any]:
        try:
            return await self._load()
        except StateError:
            return {}

    async def _dump(self, data: dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            await aiofiles.os.makedirs(directory, exist_ok=True)
        async with aiofiles.open(self.path, 'w') as f:
            await f.write(yaml.safe_dump(data, default_flow_style=False))
