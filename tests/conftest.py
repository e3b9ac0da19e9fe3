import asyncio
from typing import Optional

import pytest

from fsbrowser.asyncio.local import AsyncLocalContents
from fsbrowser.asyncio.sessions import InMemorySessionRegistry
from fsbrowser.config import BrowserConfig
from fsbrowser.model import BrowserModel
from fsbrowser.utils.entry import DirectoryEntry, SaveModel


class RecordingContents(AsyncLocalContents):
    """Local contents that records calls and can hold or fail them."""

    def __init__(self, root_dir: str, supports_chunked: bool = True):
        super().__init__(root_dir)
        self.supports_chunked = supports_chunked
        self.gets: list[str] = []
        self.heads: list[str] = []
        self.saves: list[tuple[str, SaveModel]] = []
        self.gate: Optional[asyncio.Event] = None
        self.fail_get: dict[str, Exception] = {}
        self.fail_chunk: Optional[int] = None
        self.on_save = None

    async def get(self, path: str, content: bool = True) -> DirectoryEntry:
        (self.gets if content else self.heads).append(path)
        if self.gate is not None:
            await self.gate.wait()
        if path in self.fail_get:
            raise self.fail_get[path]
        return await super().get(path, content)

    async def save(self, path: str, model: SaveModel) -> DirectoryEntry:
        self.saves.append((path, model))
        if self.on_save is not None:
            self.on_save(path, model)
        if self.fail_chunk is not None and model.chunk == self.fail_chunk:
            raise OSError('connection reset')
        return await super().save(path, model)


@pytest.fixture
def tree(tmp_path):
    (tmp_path / 'a' / 'b' / 'c').mkdir(parents=True)
    (tmp_path / 'a' / 'x.ipynb').write_text('{}')
    (tmp_path / 'a' / 'y.txt').write_text('hello')
    (tmp_path / 'a' / '.hidden').write_text('secret')
    (tmp_path / 'top.txt').write_text('top')
    return tmp_path


@pytest.fixture
def contents(tree):
    return RecordingContents(str(tree))


@pytest.fixture
def registry():
    return InMemorySessionRegistry()


@pytest.fixture
def config():
    return BrowserConfig(auto=False, large_file_size=64, chunk_size=16)


@pytest.fixture
def model(contents, registry, config):
    model = BrowserModel(contents, registry, config=config)
    yield model
    model.dispose()
