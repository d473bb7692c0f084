"""Root registry mapping integer handles to live objects."""

import logging

from heapscope.errors import InvalidHandleError

logger = logging.getLogger(__name__)

NO_OBJECT: int = -1


class _Tombstone:
    """Marker stored in slots whose root was dropped by the host."""

    def __repr__(self) -> str:
        """Return a stable marker representation.

        :returns: Marker text.
        """
        return "<tombstone>"


_TOMBSTONE: _Tombstone = _Tombstone()


class HandleRegistry:
    """Store live objects under stable integer handles.

    Handles are positions in an append-only sequence. Identity, not equality,
    decides whether a value is already registered, so two equal but distinct
    objects receive two handles.
    """

    _slots: list[object]
    _by_identity: dict[int, int]

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._slots = []
        self._by_identity = {}

    def __len__(self) -> int:
        """Return the number of issued handles, tombstones included.

        :returns: Slot count.
        """
        return len(self._slots)

    def push(self, value: object) -> int:
        """Register a value and return its handle.

        :param value: Object to register.
        :returns: Existing or new handle, or ``NO_OBJECT`` for ``None``.
        """
        if value is None:
            return NO_OBJECT

        identity: int = id(value)
        existing: int | None = self._by_identity.get(identity)
        if existing is not None:
            return existing

        handle: int = len(self._slots)
        self._slots.append(value)
        self._by_identity[identity] = handle
        return handle

    def resolve(self, handle: int) -> object:
        """Return the object registered under ``handle``.

        :param handle: Handle issued by ``push``.
        :returns: Registered object, or ``None`` for a dropped root.
        :raises InvalidHandleError: If the handle was never issued.
        """
        if handle < 0 or handle >= len(self._slots):
            raise InvalidHandleError(f"Unknown handle: {handle}")
        value: object = self._slots[handle]
        if value is _TOMBSTONE:
            return None
        return value

    def is_live(self, handle: int) -> bool:
        """Report whether ``handle`` still references an object.

        :param handle: Candidate handle.
        :returns: ``True`` when the slot exists and was not dropped.
        """
        if handle < 0 or handle >= len(self._slots):
            return False
        return self._slots[handle] is not _TOMBSTONE

    def handles(self) -> list[int]:
        """Return every live handle in registration order.

        :returns: Live handles.
        """
        return [
            handle
            for handle, value in enumerate(self._slots)
            if value is not _TOMBSTONE
        ]

    def remove(self, value: object) -> bool:
        """Drop ``value`` without shifting any other handle.

        :param value: Previously registered object.
        :returns: ``True`` when the value was registered.
        """
        identity: int = id(value)
        handle: int | None = self._by_identity.get(identity)
        if handle is None:
            return False
        if self._slots[handle] is not value:
            return False

        self._slots[handle] = _TOMBSTONE
        del self._by_identity[identity]
        logger.debug("Dropped root handle %d", handle)
        return True
