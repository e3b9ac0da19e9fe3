import asyncio
import base64
import dataclasses
import logging
import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, Callable, Iterator, Optional

import aiofiles
import aiofiles.os

from fsbrowser.config import CHUNK_SIZE, LARGE_FILE_SIZE
from fsbrowser.errors import DisposedError, SizeLimitError, UserCancelledError
from fsbrowser.utils import paths
from fsbrowser.utils.entry import ChangedArgs, DirectoryEntry, SaveModel, UploadTask

if TYPE_CHECKING:
    from fsbrowser.model import BrowserModel

logger = logging.getLogger(__name__)


class UploadSource(ABC):
    """Named byte source read in ranges.

    Attributes
    ----------
    name : str
        File name at the destination.
    size : int
        Size in bytes.
    """

    def __init__(self, name: str, size: int) -> None:
        self.name = name
        self.size = size

    @abstractmethod
    async def read(self, start: int, end: int) -> bytes:
        pass


class BytesSource(UploadSource):
    """Upload source backed by bytes in memory."""

    def __init__(self, name: str, data: bytes) -> None:
        super().__init__(name, len(data))
        self.data = data

    async def read(self, start: int, end: int) -> bytes:
        return self.data[start:end]


class FileSource(UploadSource):
    """Upload source backed by a local file."""

    def __init__(self, path: str, size: int, name: Optional[str] = None) -> None:
        super().__init__(name or os.path.basename(path), size)
        self.path = path

    @classmethod
    async def open(cls, path: str, name: Optional[str] = None) -> 'FileSource':
        return cls(path, await aiofiles.os.path.getsize(path), name)

    async def read(self, start: int, end: int) -> bytes:
        async with aiofiles.open(self.path, 'rb') as f:
            await f.seek(start)
            return await f.read(end - start)


ConfirmLarge = Callable[[UploadSource], Awaitable[bool]]
ConfirmOverwrite = Callable[[str], Awaitable[bool]]


async def decline(*args: object) -> bool:
    return False


class UploadPipeline:
    """Whole-file and chunked uploads into the current directory of a model.

    Attributes
    ----------
    model : BrowserModel
        Owning model.
    large_file_size : int, default=15 MiB
        Sizes above need confirmation and chunked transport.
    chunk_size : int, default=1 MiB
        Piece size for chunked uploads.
    confirm_large : ConfirmLarge, default=decline
        Asked before uploading a large file.
    confirm_overwrite : ConfirmOverwrite, default=decline
        Asked before replacing an existing entry.
    """

    def __init__(
        self,
        model: 'BrowserModel',
        large_file_size: int = LARGE_FILE_SIZE,
        chunk_size: int = CHUNK_SIZE,
        confirm_large: Optional[ConfirmLarge] = None,
        confirm_overwrite: Optional[ConfirmOverwrite] = None
    ) -> None:
        self.model = model
        self.large_file_size = large_file_size
        self.chunk_size = chunk_size
        self.confirm_large = confirm_large or decline
        self.confirm_overwrite = confirm_overwrite or decline
        self._uploads: tuple[UploadTask, ...] = ()

    def uploads(self) -> Iterator[UploadTask]:
        return iter(self._uploads)

    async def upload(self, source: UploadSource) -> DirectoryEntry:
        """Upload into the current directory.

        Parameters
        ----------
        source : UploadSource
            Uploaded data.

        Returns
        -------
        DirectoryEntry
            Model of the saved file.

        Raises
        ------
        SizeLimitError
            If the file is large and the backend cannot take chunks.
        UserCancelledError
            If a large file or overwrite confirmation is declined.
        DisposedError
            If the model is disposed before the upload completes.
        """
        contents = self.model.contents
        large = source.size > self.large_file_size
        if large and not contents.supports_chunked:
            msg = f'Cannot upload file (>{self.large_file_size // (1024 * 1024)} MB). {source.name}'
            logger.warning(msg)
            raise SizeLimitError(msg)
        if large:
            self._check_disposed()
            if not await self.confirm_large(source):
                raise UserCancelledError('Cancelled large file upload')
        self._check_disposed()
        await self.model.refresh()
        self._check_disposed()
        if self.model.find(source.name) is not None and not await self.confirm_overwrite(source.name):
            raise UserCancelledError('File not uploaded')
        self._check_disposed()
        path = paths.join(self.model.path, source.name)
        if contents.supports_chunked and source.size > self.chunk_size:
            return await self._upload_chunked(source, path)
        return await self._upload_whole(source, path)

    async def _upload_whole(self, source: UploadSource, path: str) -> DirectoryEntry:
        self._track(UploadTask(path))
        try:
            return await self._save(source, path, 0, source.size)
        finally:
            self._untrack(path)

    async def _upload_chunked(self, source: UploadSource, path: str) -> DirectoryEntry:
        task = UploadTask(path)
        self._track(task)
        self._emit('start', None, task)
        sent, chunk = 0, 0
        try:
            while True:
                chunk += 1
                end = min(sent + self.chunk_size, source.size)
                last = end >= source.size
                entry = await self._save(source, path, sent, end, chunk, last)
                sent = end
                if last:
                    break
                update = UploadTask(path, progress=sent / source.size, chunk=chunk)
                self._track(update)
                self._emit('update', task, update)
                task = update
        except DisposedError:
            self._untrack(path)
            raise
        except Exception:
            self._untrack(path)
            logger.warning("upload of '%s' failed at chunk %d", path, chunk)
            self._emit('failure', None, task)
            raise
        except asyncio.CancelledError:
            self._untrack(path)
            raise
        self._untrack(path)
        self._emit('finish', task, dataclasses.replace(task, complete=True))
        return entry

    async def _save(
        self,
        source: UploadSource,
        path: str,
        start: int,
        end: int,
        chunk: Optional[int] = None,
        last: bool = False
    ) -> DirectoryEntry:
        self._check_disposed()
        data = await source.read(start, end)
        self._check_disposed()
        model = SaveModel(
            type='file', name=source.name, format='base64',
            content=base64.b64encode(data).decode('ascii'), chunk=chunk, last=last
        )
        return await self.model.contents.save(path, model)

    def _track(self, task: UploadTask) -> None:
        self._uploads = tuple(item for item in self._uploads if item.path != task.path) + (task,)

    def _untrack(self, path: str) -> None:
        self._uploads = tuple(item for item in self._uploads if item.path != path)

    def _emit(self, name: str, old_value: Optional[UploadTask], new_value: Optional[UploadTask]) -> None:
        self.model.upload_changed.emit(ChangedArgs(name, old_value, new_value))

    def _check_disposed(self) -> None:
        if self.model.is_disposed:
            raise DisposedError('File browser model disposed, upload cancelled')
