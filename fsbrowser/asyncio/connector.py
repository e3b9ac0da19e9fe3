from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fsbrowser.utils import paths
from fsbrowser.utils.entry import ChangedArgs, DirectoryEntry, SaveModel
from fsbrowser.utils.signal import Signal


class ContentsConnector(ABC):
    """Abstract class for async contents connector.

    Attributes
    ----------
    drive_name : str
        Drive name prepended to paths, empty for the default drive.
    supports_chunked : bool
        Whether ``save`` accepts chunked file models.
    file_changed : Signal[ChangedArgs]
        Emitted after every successful ``save`` and ``delete``.
    """

    supports_chunked: bool = True

    def __init__(self, drive_name: str = '') -> None:
        self.drive_name = drive_name
        self.file_changed: Signal[ChangedArgs] = Signal('file_changed')

    @asynccontextmanager
    async def connect(self) -> AsyncGenerator['ContentsConnector', None]:
        """Connects to contents backend.

        Yields
        -------
        ContentsConnector
            Class instance
        """
        yield self

    @abstractmethod
    async def get(self, path: str, content: bool = True) -> DirectoryEntry:
        """Get file or directory model.

        Parameters
        ----------
        path : str
            File or directory path.
        content : bool, default=True
            Include directory children or file content.

        Returns
        -------
        DirectoryEntry
            Entry model.

        Raises
        ------
        NotFoundError
            If the path does not exist.
        TransportError
            On any other backend failure.
        """
        pass

    @abstractmethod
    async def save(self, path: str, model: SaveModel) -> DirectoryEntry:
        """Save file, file chunk or directory.

        Parameters
        ----------
        path : str
            Destination path.
        model : SaveModel
            Saved model. Chunk ``1`` truncates the destination, later chunks
            are appended, and the chunk marked ``last`` completes the file.

        Returns
        -------
        DirectoryEntry
            Saved entry model without content.
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        pass

    @abstractmethod
    async def get_download_url(self, path: str) -> str:
        pass

    def resolve_path(self, root: str, path: str) -> str:
        """Resolve path relative to root.

        Parameters
        ----------
        root : str
            Current directory, possibly prefixed with a drive name.
        path : str
            Relative path, or absolute if starting with ``'/'``.

        Returns
        -------
        str
            Resolved path carrying the drive name of root.
        """
        drive, local = paths.split_drive(root)
        resolved = paths.resolve(local, path)
        return f'{drive}:{resolved}' if drive else resolved

    def local_path(self, path: str) -> str:
        """Path without drive name."""
        return paths.split_drive(path)[1]

    def _emit_change(self, name: str, old_value: Optional[DirectoryEntry] = None,
                     new_value: Optional[DirectoryEntry] = None) -> None:
        self.file_changed.emit(ChangedArgs(name, old_value, new_value))
