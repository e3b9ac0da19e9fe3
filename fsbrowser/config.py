from dataclasses import dataclass, fields
from typing import Any

import yaml

LARGE_FILE_SIZE = 15 * 1024 * 1024
CHUNK_SIZE = 1024 * 1024


@dataclass
class BrowserConfig:
    """File browser model configuration.

    Attributes
    ----------
    refresh_interval : float, default=10.0
        Base polling interval in seconds.
    max_refresh_interval : float, default=300.0
        Polling interval ceiling in seconds.
    backoff : float, default=2.0
        Interval growth factor between automatic refreshes, 1 disables backoff.
    auto : bool, default=True
        Start polling when the model connects.
    large_file_size : int, default=15 MiB
        Uploads above this size need confirmation and chunked transport.
    chunk_size : int, default=1 MiB
        Chunked upload piece size in bytes.
    drive_name : str, default=''
        Drive name prepended to the root path.
    include_hidden : bool, default=False
        List dot-files.
    """

    refresh_interval: float = 10.0
    max_refresh_interval: float = 300.0
    backoff: float = 2.0
    auto: bool = True
    large_file_size: int = LARGE_FILE_SIZE
    chunk_size: int = CHUNK_SIZE
    drive_name: str = ''
    include_hidden: bool = False

    def __post_init__(self) -> None:
        if self.refresh_interval <= 0:
            raise ValueError('refresh_interval must be positive')
        if self.max_refresh_interval < self.refresh_interval:
            raise ValueError('max_refresh_interval must not be less than refresh_interval')
        if self.backoff < 1:
            raise ValueError('backoff must be at least 1')
        if self.chunk_size <= 0:
            raise ValueError('chunk_size must be positive')

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> 'BrowserConfig':
        known = {field.name for field in fields(cls)}
        unknown = set(config) - known
        if unknown:
            raise ValueError(f'unknown browser options: {sorted(unknown)}')
        return cls(**config)

    @classmethod
    def from_yaml(cls, path: str) -> 'BrowserConfig':
        """Creates class instance from the ``browser`` section of a configuration file.

        Parameters
        ----------
        path : str
            path to configuration file.

        Returns
        -------
        BrowserConfig
            Class instance.
        """
        with open(path) as f:
            config = yaml.safe_load(f) or {}
        return cls.from_dict(config.get('browser') or {})
