import base64
import datetime
from dataclasses import dataclass
from typing import Any, Literal, Optional, Union


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    path: str
    type: Literal['file', 'directory']
    writable: bool = True
    created: Optional[datetime.datetime] = None
    last_modified: Optional[datetime.datetime] = None
    mimetype: Optional[str] = None
    format: Optional[str] = None
    size: Optional[int] = None
    content: Any = None
    indices: Optional[tuple[int, ...]] = None

    @property
    def children(self) -> tuple['DirectoryEntry', ...]:
        if self.type == 'directory' and self.content:
            return tuple(self.content)
        return ()


@dataclass(frozen=True)
class SessionEntry:
    id: str
    path: str
    name: str = ''
    kernel: Optional[str] = None


@dataclass(frozen=True)
class UploadTask:
    path: str
    progress: float = 0.0
    chunk: Optional[int] = None
    complete: bool = False


@dataclass(frozen=True)
class SaveModel:
    type: Literal['file', 'directory']
    name: str
    format: Optional[Literal['base64', 'text']] = None
    content: Optional[str] = None
    chunk: Optional[int] = None
    last: bool = False

    def payload(self) -> bytes:
        if self.content is None:
            return b''
        if self.format == 'base64':
            return base64.b64decode(self.content)
        return self.content.encode('utf-8')


@dataclass(frozen=True)
class FilterMatch:
    score: float = 0.0
    indices: Optional[tuple[int, ...]] = None


@dataclass(frozen=True)
class ChangedArgs:
    name: str
    old_value: Any = None
    new_value: Any = None


FilterResult = Union[bool, FilterMatch, None]
