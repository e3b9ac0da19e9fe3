class BrowserError(Exception):
    """Base class for file browser errors."""


class ContentsError(BrowserError):
    """Contents connector failure."""


class NotFoundError(ContentsError):
    """Path does not exist on the contents backend."""

    def __init__(self, path: str):
        super().__init__(f"No such file or directory: '{path}'")
        self.path = path


class TransportError(ContentsError):
    """Any other contents backend failure."""


class UploadError(BrowserError):
    """Upload refused before any data was sent."""


class SizeLimitError(UploadError):
    pass


class UserCancelledError(UploadError):
    pass


class DisposedError(BrowserError):
    """Operation attempted on a disposed model."""


class StateError(BrowserError):
    """State store record could not be read."""
