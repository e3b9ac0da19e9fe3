import asyncio
import dataclasses
import logging
from collections.abc import AsyncGenerator, Awaitable, Iterable, Iterator
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from fsbrowser.asyncio.connector import ContentsConnector
from fsbrowser.asyncio.sessions import SessionRegistry, reconcile_sessions
from fsbrowser.asyncio.state import StateStore
from fsbrowser.config import BrowserConfig
from fsbrowser.errors import BrowserError, ContentsError, NotFoundError
from fsbrowser.poll import Frequency, Poll
from fsbrowser.upload import ConfirmLarge, ConfirmOverwrite, UploadPipeline, UploadSource
from fsbrowser.utils import paths
from fsbrowser.utils.entry import (
    ChangedArgs,
    DirectoryEntry,
    FilterMatch,
    FilterResult,
    SessionEntry,
    UploadTask,
)
from fsbrowser.utils.signal import Signal

logger = logging.getLogger(__name__)

ItemFilter = Callable[[DirectoryEntry], FilterResult]


class BrowserModel:
    """File browser state.

    Caches the listing of the current directory, keeps it fresh by polling,
    tracks the running sessions opened on listed files and uploads files into
    the current directory. Paths without a leading ``'/'`` are relative to
    the current directory and ``'..'`` ascends.

    Attributes
    ----------
    contents : ContentsConnector
        Contents backend.
    registry : SessionRegistry
        Running session registry.
    config : BrowserConfig
        Model configuration.
    connection_failure : Signal[Exception]
        Emitted when a directory fetch fails.
    file_changed : Signal[ChangedArgs]
        Emitted when a file in the current directory changes on the backend.
    path_changed : Signal[ChangedArgs]
        Emitted with old and new path when the current directory changes.
    refreshed : Signal[None]
        Emitted when the listing or the session set is refreshed.
    upload_changed : Signal[ChangedArgs]
        Emitted on chunked upload ``start``, ``update``, ``finish`` and
        ``failure`` with ``UploadTask`` values.
    """

    def __init__(
        self,
        contents: ContentsConnector,
        registry: SessionRegistry,
        state: Optional[StateStore] = None,
        config: Optional[BrowserConfig] = None,
        confirm_large: Optional[ConfirmLarge] = None,
        confirm_overwrite: Optional[ConfirmOverwrite] = None,
        filter: Optional[ItemFilter] = None
    ) -> None:
        self.contents = contents
        self.registry = registry
        self.config = config or BrowserConfig()
        self.drive_name = self.config.drive_name or contents.drive_name
        self.connection_failure: Signal[Exception] = Signal('connection_failure')
        self.file_changed: Signal[ChangedArgs] = Signal('file_changed')
        self.path_changed: Signal[ChangedArgs] = Signal('path_changed')
        self.refreshed: Signal[None] = Signal('refreshed')
        self.upload_changed: Signal[ChangedArgs] = Signal('upload_changed')
        self._state = state
        self._filter = filter
        self._include_hidden = self.config.include_hidden
        self._model = DirectoryEntry(
            name='', path=self.root_path, type='directory', writable=False,
            mimetype='text/plain', format='text'
        )
        self._items: tuple[DirectoryEntry, ...] = ()
        self._paths: frozenset[str] = frozenset()
        self._sessions: tuple[SessionEntry, ...] = ()
        self._pending: Optional[asyncio.Future[None]] = None
        self._pending_path: Optional[str] = None
        self._key = ''
        self._restored: Optional[asyncio.Future[bool]] = None
        self._background: set[asyncio.Future[Any]] = set()
        self._is_disposed = False
        self._poll = Poll(
            lambda: self.cd('.'),
            Frequency(
                interval=self.config.refresh_interval,
                backoff=self.config.backoff,
                max=self.config.max_refresh_interval
            ),
            name='fsbrowser:model'
        )
        self._uploader = UploadPipeline(
            self,
            large_file_size=self.config.large_file_size,
            chunk_size=self.config.chunk_size,
            confirm_large=confirm_large,
            confirm_overwrite=confirm_overwrite
        )
        contents.file_changed.connect(self._on_file_changed)
        registry.running_changed.connect(self._on_running_changed)

    @property
    def path(self) -> str:
        return self._model.path

    @property
    def root_path(self) -> str:
        return f'{self.drive_name}:' if self.drive_name else ''

    @property
    def directory(self) -> DirectoryEntry:
        """Model of the current directory, without content."""
        return self._model

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    @property
    def restored(self) -> 'asyncio.Future[bool]':
        """Future resolved once ``restore`` has finished, the same object on every access."""
        return self._restored_future()

    @property
    def visible(self) -> bool:
        return self._poll.visible

    @visible.setter
    def visible(self, value: bool) -> None:
        self._poll.visible = value

    @property
    def poll(self) -> Poll:
        return self._poll

    def items(self) -> Iterator[DirectoryEntry]:
        """Iterate over the current directory entries.

        Dot-files are skipped unless hidden files are shown. Directories are
        always kept; files are kept when the filter returns ``True`` or a
        ``FilterMatch``, whose indices are set on the yielded entry.
        """
        for item in self._items:
            if not self._include_hidden and item.name.startswith('.'):
                continue
            if item.type == 'directory' or self._filter is None:
                yield item
                continue
            match = self._filter(item)
            if isinstance(match, FilterMatch):
                yield dataclasses.replace(item, indices=match.indices)
            elif match:
                yield item

    def find(self, name: str) -> Optional[DirectoryEntry]:
        """Entry of the current directory with the given name, hidden or not."""
        return next((item for item in self._items if item.name == name), None)

    def sessions(self) -> Iterator[SessionEntry]:
        return iter(self._sessions)

    def uploads(self) -> Iterator[UploadTask]:
        return self._uploader.uploads()

    async def show_hidden_files(self, value: bool) -> None:
        self._include_hidden = value
        await self.refresh()

    async def set_filter(self, filter: Optional[ItemFilter]) -> None:
        self._filter = filter
        await self.refresh()

    def start(self) -> None:
        """Start polling the current directory."""
        self._poll.start()

    @asynccontextmanager
    async def connect(self) -> AsyncGenerator['BrowserModel', None]:
        """Start polling if ``config.auto`` and close the model on exit.

        Yields
        -------
        BrowserModel
            Class instance
        """
        if self.config.auto:
            self.start()
        try:
            yield self
        finally:
            await self.close()

    async def refresh(self) -> None:
        """Fetch the current directory now and restart the polling schedule."""
        await self._poll.refresh()
        self.refreshed.emit(None)

    async def cd(self, path: str = '.') -> None:
        """Change directory.

        Parameters
        ----------
        path : str, default='.'
            Directory path. ``'.'`` refreshes the pending or current directory.

        Notes
        -----
        Concurrent calls for the directory being fetched share its fetch.
        A call for another directory waits for the fetch in flight first.
        """
        if path != '.':
            path = self.contents.resolve_path(self._model.path, path)
        elif self._pending_path is not None:
            path = self._pending_path
        else:
            path = self._model.path
        while self._pending is not None:
            pending = self._pending
            if path == self._pending_path:
                await asyncio.shield(pending)
                return
            await asyncio.shield(pending)
        if self._is_disposed:
            return
        self._pending_path = path
        self._pending = asyncio.ensure_future(self._fetch(path))
        await asyncio.shield(self._pending)

    async def download(self, path: str) -> str:
        """Download URL of a file."""
        return await self.contents.get_download_url(path)

    async def upload(self, source: UploadSource) -> DirectoryEntry:
        """Upload a file into the current directory.

        See ``UploadPipeline.upload``.
        """
        return await self._uploader.upload(source)

    async def restore(self, id: str, populate: bool = True) -> None:
        """Restore the last visited directory.

        Parameters
        ----------
        id : str
            Unique ID used to build the state store key.
        populate : bool, default=True
            If False, only set the key used to persist the path.

        Notes
        -----
        Only the first call restores, later calls return immediately. An
        unreadable record is removed from the store.
        """
        if self._key:
            return
        key = f'file-browser-{id}:cwd'
        self._key = key
        state = self._state
        try:
            if not populate or state is None or self._is_disposed:
                return
            try:
                value = await state.fetch(key)
                if not value or self._is_disposed:
                    return
                path = value['path']
                await self.cd('/')
                if self._is_disposed:
                    return
                await self.contents.get(path, content=False)
                if self._is_disposed:
                    return
                await self.cd(self.contents.local_path(path))
            except (BrowserError, OSError, KeyError, TypeError) as err:
                logger.debug("discarding persisted state '%s': %s", key, err)
                await self._discard_state(state, key)
        finally:
            if not self._restored_future().done():
                self._restored_future().set_result(True)

    def dispose(self) -> None:
        if self._is_disposed:
            return
        uploading = [task.path for task in self.uploads()]
        if uploading:
            logger.warning('disposing file browser while files are still uploading: %s', uploading)
        self._is_disposed = True
        self._poll.dispose()
        for task in list(self._background):
            task.cancel()
        self.contents.file_changed.disconnect(self._on_file_changed)
        self.registry.running_changed.disconnect(self._on_running_changed)
        self._sessions = ()
        self._items = ()
        self._paths = frozenset()
        for signal in (self.connection_failure, self.file_changed, self.path_changed,
                       self.refreshed, self.upload_changed):
            signal.clear()

    async def close(self) -> None:
        self.dispose()
        await self._poll.stop()

    async def _fetch(self, path: str) -> None:
        old_path = self.path
        try:
            contents = await self.contents.get(path, content=True)
        except NotFoundError as error:
            self._clear_pending()
            if self._is_disposed:
                return
            logger.error("Directory not found: '%s'", path)
            self.connection_failure.emit(error)
            if path != self.root_path:
                await self.cd('/')
            return
        except Exception as error:
            self._clear_pending()
            if self._is_disposed:
                return
            if isinstance(error, ContentsError):
                logger.error("Failed to fetch '%s': %s", path, error)
            else:
                logger.exception("Failed to fetch '%s'", path)
            self.connection_failure.emit(error)
            return
        except BaseException:
            self._clear_pending()
            raise
        self._clear_pending()
        if self._is_disposed:
            return
        self._handle_contents(contents)
        if old_path != self.path:
            logger.debug("path changed from '%s' to '%s'", old_path, self.path)
            self._save_state(self.path)
            self.path_changed.emit(ChangedArgs('path', old_path, self.path))
        self._populate_sessions(self.registry.running())
        self.refreshed.emit(None)

    def _clear_pending(self) -> None:
        self._pending = None
        self._pending_path = None

    def _handle_contents(self, contents: DirectoryEntry) -> None:
        self._model = dataclasses.replace(contents, content=None)
        self._items = contents.children
        self._paths = frozenset(item.path for item in self._items)

    def _populate_sessions(self, models: Iterable[SessionEntry]) -> None:
        self._sessions = reconcile_sessions(models, self._paths)

    def _on_running_changed(self, models: list[SessionEntry]) -> None:
        self._populate_sessions(models)
        self.refreshed.emit(None)

    def _on_file_changed(self, change: ChangedArgs) -> None:
        current = self.contents.local_path(self.path)
        relevant = any(
            value is not None and paths.dirname(self.contents.local_path(value.path)) == current
            for value in (change.old_value, change.new_value)
        )
        if not relevant:
            return
        self._spawn(self._poll.refresh())
        self._populate_sessions(self.registry.running())
        self.file_changed.emit(change)

    def _save_state(self, path: str) -> None:
        if self._state is not None and self._key:
            self._spawn(self._state.save(self._key, {'path': path}))

    def _restored_future(self) -> 'asyncio.Future[bool]':
        if self._restored is None:
            self._restored = asyncio.get_running_loop().create_future()
        return self._restored

    async def _discard_state(self, state: StateStore, key: str) -> None:
        try:
            await state.remove(key)
        except (BrowserError, OSError) as err:
            logger.debug("failed to remove persisted state '%s': %s", key, err)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: 'asyncio.Future[Any]') -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning('background task failed: %r', task.exception())
