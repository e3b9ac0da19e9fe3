import logging
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Signal(Generic[T]):
    """Named publish/subscribe channel.

    Slots are called synchronously, in connection order, at emit time.

    Attributes
    ----------
    name : str
        Channel name, used in log messages.
    """

    def __init__(self, name: str):
        self.name = name
        self._slots: list[Callable[[T], Any]] = []

    def connect(self, slot: Callable[[T], Any]) -> bool:
        """Connect a slot.

        Parameters
        ----------
        slot : Callable[[T], Any]
            Callable invoked with the emitted value.

        Returns
        -------
        bool
            False if the slot was already connected.
        """
        if slot in self._slots:
            return False
        self._slots.append(slot)
        return True

    def disconnect(self, slot: Callable[[T], Any]) -> bool:
        if slot not in self._slots:
            return False
        self._slots.remove(slot)
        return True

    def emit(self, args: T) -> None:
        for slot in list(self._slots):
            try:
                slot(args)
            except Exception:
                logger.exception("slot %r of signal '%s' raised", slot, self.name)

    def clear(self) -> None:
        self._slots.clear()

    def __len__(self) -> int:
        return len(self._slots)
