import base64
import datetime
import logging
import mimetypes
import os
import pathlib
from typing import Optional

import aiofiles
import aiofiles.os
import aioshutil

from fsbrowser.asyncio.connector import ContentsConnector
from fsbrowser.errors import NotFoundError, TransportError
from fsbrowser.utils import paths
from fsbrowser.utils.entry import DirectoryEntry, SaveModel

logger = logging.getLogger(__name__)


class AsyncLocalContents(ContentsConnector):
    """Async local file system contents.

    Attributes
    ----------
    root_dir : str
        Directory served as the contents root.
    drive_name : str, default=''
        Drive name.
    """

    def __init__(self, root_dir: str, drive_name: str = '') -> None:
        super().__init__(drive_name)
        self.root_dir = os.path.abspath(root_dir)

    async def get(self, path: str, content: bool = True) -> DirectoryEntry:
        local = self.local_path(path).strip('/')
        os_path = self._os_path(local)
        if not await aiofiles.os.path.exists(os_path):
            raise NotFoundError(path)
        try:
            if await aiofiles.os.path.isdir(os_path):
                return await self._directory_model(local, os_path, content)
            return await self._file_model(local, os_path, content)
        except FileNotFoundError as err:
            raise NotFoundError(path) from err
        except OSError as err:
            raise TransportError(f"Failed to read '{path}': {err}") from err

    async def save(self, path: str, model: SaveModel) -> DirectoryEntry:
        local = self.local_path(path).strip('/')
        os_path = self._os_path(local)
        try:
            if model.type == 'directory':
                await aiofiles.os.makedirs(os_path, exist_ok=True)
            else:
                mode = 'ab' if model.chunk is not None and model.chunk > 1 else 'wb'
                async with aiofiles.open(os_path, mode) as f:
                    await f.write(model.payload())
        except FileNotFoundError as err:
            raise NotFoundError(paths.dirname(path)) from err
        except OSError as err:
            raise TransportError(f"Failed to save '{path}': {err}") from err
        entry = await self.get(path, content=False)
        if model.chunk is None or model.last:
            self._emit_change('save', None, entry)
        return entry

    async def delete(self, path: str) -> None:
        entry = await self.get(path, content=False)
        os_path = self._os_path(self.local_path(path).strip('/'))
        try:
            if entry.type == 'directory':
                await aioshutil.rmtree(os_path)
            else:
                await aiofiles.os.remove(os_path)
        except OSError as err:
            raise TransportError(f"Failed to delete '{path}': {err}") from err
        self._emit_change('delete', entry, None)

    async def get_download_url(self, path: str) -> str:
        return pathlib.Path(self._os_path(self.local_path(path).strip('/'))).as_uri()

    def _os_path(self, local: str) -> str:
        os_path = os.path.abspath(os.path.join(self.root_dir, *[part for part in local.split('/') if part]))
        if os.path.commonpath([self.root_dir, os_path]) != self.root_dir:
            raise NotFoundError(local)
        return os_path

    def _api_path(self, local: str) -> str:
        return f'{self.drive_name}:{local}' if self.drive_name else local

    async def _directory_model(self, local: str, os_path: str, content: bool) -> DirectoryEntry:
        children: Optional[list[DirectoryEntry]] = None
        if content:
            children = []
            with await aiofiles.os.scandir(os_path) as it:
                for entry in it:
                    child = paths.join(local, entry.name)
                    stat = entry.stat()
                    if entry.is_dir():
                        children.append(self._model(child, 'directory', stat))
                    elif entry.is_file():
                        children.append(self._model(child, 'file', stat))
        stat = await aiofiles.os.stat(os_path)
        model = self._model(local, 'directory', stat)
        return DirectoryEntry(
            name=model.name, path=model.path, type='directory', writable=model.writable,
            created=model.created, last_modified=model.last_modified,
            format='json' if content else None, content=children
        )

    async def _file_model(self, local: str, os_path: str, content: bool) -> DirectoryEntry:
        stat = await aiofiles.os.stat(os_path)
        model = self._model(local, 'file', stat)
        if not content:
            return model
        async with aiofiles.open(os_path, 'rb') as f:
            data = await f.read()
        try:
            body, fmt = data.decode('utf-8'), 'text'
        except UnicodeDecodeError:
            body, fmt = base64.b64encode(data).decode('ascii'), 'base64'
        return DirectoryEntry(
            name=model.name, path=model.path, type='file', writable=model.writable,
            created=model.created, last_modified=model.last_modified,
            mimetype=model.mimetype, format=fmt, size=model.size, content=body
        )

    def _model(self, local: str, type_: str, stat: os.stat_result) -> DirectoryEntry:
        os_path = self._os_path(local)
        return DirectoryEntry(
            name=paths.basename(local),
            path=self._api_path(local),
            type=type_,  # type: ignore[arg-type]
            writable=os.access(os_path, os.W_OK),
            created=datetime.datetime.fromtimestamp(stat.st_ctime),
            last_modified=datetime.datetime.fromtimestamp(stat.st_mtime),
            mimetype=mimetypes.guess_type(local)[0] if type_ == 'file' else None,
            size=stat.st_size if type_ == 'file' else None
        )

