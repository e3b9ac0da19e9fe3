from fsbrowser.asyncio.local import AsyncLocalContents
from fsbrowser.asyncio.s3 import AsyncS3Contents
from fsbrowser.asyncio.sessions import InMemorySessionRegistry
from fsbrowser.asyncio.state import YamlStateStore
from fsbrowser.config import BrowserConfig
from fsbrowser.model import BrowserModel
from fsbrowser.upload import BytesSource, FileSource

__all__ = [
    'AsyncLocalContents',
    'AsyncS3Contents',
    'BrowserConfig',
    'BrowserModel',
    'BytesSource',
    'FileSource',
    'InMemorySessionRegistry',
    'YamlStateStore',
]
