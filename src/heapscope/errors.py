"""Custom error types for heapscope."""


class HeapscopeError(Exception):
    """Base class for all heapscope errors."""


class InvalidHandleError(HeapscopeError, IndexError):
    """Raised when a handle does not index the root registry."""


class ArgumentShapeError(HeapscopeError):
    """Raised when supplied arguments do not fit a member's parameters."""


class TypeNotFoundError(HeapscopeError):
    """Raised when a type name cannot be resolved in the host process."""


class MacroLoadError(HeapscopeError):
    """Raised when a macro payload cannot be materialized into a unit."""


class InspectionProtocolError(HeapscopeError):
    """Raised for unexpected messages on the controller/host channel."""


class InspectionRemoteError(HeapscopeError):
    """Raised when the inspected process reports an exception."""

    remote_type_name: str
    remote_message: str
    remote_traceback: str

    def __init__(
        self,
        remote_type_name: str,
        remote_message: str,
        remote_traceback: str,
    ) -> None:
        """Initialize a remote exception wrapper.

        :param remote_type_name: Original remote exception type name.
        :param remote_message: Original remote exception message.
        :param remote_traceback: Original remote traceback text.
        """
        self.remote_type_name = remote_type_name
        self.remote_message = remote_message
        self.remote_traceback = remote_traceback
        formatted: str = (
            f"Inspected process raised {remote_type_name}: {remote_message}\n"
            + f"Remote traceback:\n{remote_traceback}"
        )
        super().__init__(formatted)
