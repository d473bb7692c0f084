"""Controller-side client for a remote inspection worker."""

import threading
from collections.abc import Sequence
from multiprocessing.connection import Connection

from heapscope.errors import ArgumentShapeError
from heapscope.errors import InspectionProtocolError
from heapscope.errors import InspectionRemoteError
from heapscope.errors import InvalidHandleError
from heapscope.worker import READY_REQUEST_ID


class InspectionClient:
    """Mirror every inspection operation over one IPC connection.

    Calls are serialized; each one blocks until its correlated response
    arrives.
    """

    _connection: Connection | None
    _lock: threading.Lock
    _next_request_id: int

    def __init__(self, connection: Connection) -> None:
        """Initialize the client.

        :param connection: Connection whose peer runs an inspection worker.
        """
        self._connection = connection
        self._lock = threading.Lock()
        self._next_request_id = READY_REQUEST_ID + 1

    def _require_connection(self) -> Connection:
        """Return the active IPC connection.

        :returns: Active connection object.
        :raises InspectionProtocolError: If the client is closed.
        """
        connection: Connection | None = self._connection
        if connection is None:
            raise InspectionProtocolError("Client is closed")
        return connection

    def wait_until_ready(self) -> None:
        """Consume the worker's ready announcement.

        :raises InspectionProtocolError: If the worker does not announce readiness.
        """
        with self._lock:
            response: dict[str, object] = self._wait_for_response(READY_REQUEST_ID)
        payload: object = response.get("payload")
        if isinstance(payload, dict) is False or payload.get("ready") is not True:
            raise InspectionProtocolError("Worker did not report ready")

    def _raise_remote_error(self, payload: dict[str, object]) -> None:
        """Raise a local exception based on a worker error payload.

        :param payload: Error payload dictionary.
        :raises ArgumentShapeError: When a direct invocation's arguments did not fit.
        :raises InvalidHandleError: When a handle was never issued.
        :raises InspectionProtocolError: For protocol errors reported by the worker.
        :raises InspectionRemoteError: For any other remote exception.
        """
        error_type_obj: object = payload.get("error_type", "Exception")
        error_message_obj: object = payload.get("error_message", "")
        stacktrace_obj: object = payload.get("stacktrace", "")

        error_type: str = "Exception"
        if isinstance(error_type_obj, str) is True:
            error_type = error_type_obj
        error_message: str = ""
        if isinstance(error_message_obj, str) is True:
            error_message = error_message_obj
        stacktrace: str = ""
        if isinstance(stacktrace_obj, str) is True:
            stacktrace = stacktrace_obj

        if error_type == "ArgumentShapeError":
            raise ArgumentShapeError(error_message)
        if error_type == "InvalidHandleError":
            raise InvalidHandleError(error_message)
        if error_type == "InspectionProtocolError":
            raise InspectionProtocolError(error_message)
        raise InspectionRemoteError(error_type, error_message, stacktrace)

    def _wait_for_response(self, expected_request_id: int) -> dict[str, object]:
        """Wait for one correlated worker response.

        :param expected_request_id: Request id this side is waiting for.
        :returns: Response dictionary.
        :raises InspectionProtocolError: If the response shape is invalid.
        """
        connection: Connection = self._require_connection()
        try:
            incoming: object = connection.recv()
        except (EOFError, BrokenPipeError, OSError) as exc:
            raise InspectionProtocolError("Failed to receive message from inspection worker") from exc

        if isinstance(incoming, dict) is False:
            raise InspectionProtocolError("Worker message must be a dict")
        message: dict[str, object] = incoming

        request_id_obj: object = message.get("request_id")
        if isinstance(request_id_obj, int) is False:
            raise InspectionProtocolError("Worker response request_id must be an int")
        if request_id_obj != expected_request_id:
            raise InspectionProtocolError(
                f"Unexpected response request_id {request_id_obj}; expected {expected_request_id}"
            )

        status: object = message.get("status")
        if status == "ok":
            return message
        if status != "error":
            raise InspectionProtocolError(f"Unknown worker response status: {status!r}")

        payload_obj: object = message.get("payload")
        if isinstance(payload_obj, dict) is False:
            raise InspectionProtocolError("Error response payload must be a dict")
        self._raise_remote_error(payload_obj)
        raise InspectionProtocolError("Unreachable worker error state")

    def _send_request(self, action: str, payload: dict[str, object]) -> dict[str, object]:
        """Send one request and return its response payload.

        :param action: Action name.
        :param payload: Action fields.
        :returns: Response payload.
        """
        with self._lock:
            connection: Connection = self._require_connection()
            request_id: int = self._next_request_id
            self._next_request_id += 1

            request: dict[str, object] = {
                "request_id": request_id,
                "action": action,
            }
            request.update(payload)

            try:
                connection.send(request)
            except (BrokenPipeError, EOFError, OSError) as exc:
                raise InspectionProtocolError("Failed to send request to inspection worker") from exc

            response: dict[str, object] = self._wait_for_response(request_id)

        response_payload: object = response.get("payload")
        if isinstance(response_payload, dict) is False:
            raise InspectionProtocolError(f"{action} payload must be a dict")
        return response_payload

    def _call(self, action: str, **fields: object) -> object:
        """Run one action and return its ``value`` field.

        :param action: Action name.
        :param fields: Action fields.
        :returns: Decoded result value.
        """
        return self._send_request(action, fields).get("value")

    def close(self) -> None:
        """Ask the worker to stop and close the connection."""
        connection: Connection | None = self._connection
        if connection is None:
            return
        try:
            self._send_request("shutdown", {})
        except InspectionProtocolError:
            pass
        self._connection = None
        connection.close()

    def __enter__(self) -> "InspectionClient":
        """Return this client for ``with`` blocks.

        :returns: This client.
        """
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        """Close the client when leaving a ``with`` block.

        :param exc_type: Exception type, if any.
        :param exc_value: Exception value, if any.
        :param exc_traceback: Exception traceback, if any.
        """
        self.close()

    def list_roots(self) -> list[str]:
        return self._call("list_roots")  # type: ignore[return-value]

    def filter_roots(self, type_name: str) -> list[int]:
        return self._call("filter_roots", type_name=type_name)  # type: ignore[return-value]

    def list_fields(self, handle: int, path: Sequence[int] = ()) -> list[str]:
        return self._call("list_fields", handle=handle, path=list(path))  # type: ignore[return-value]

    def list_methods(self, handle: int, path: Sequence[int] = ()) -> list[str]:
        return self._call("list_methods", handle=handle, path=list(path))  # type: ignore[return-value]

    def list_constructors(self, type_name_or_handle: str | int, path: Sequence[int] = ()) -> list[str]:
        return self._call("list_constructors", target=type_name_or_handle, path=list(path))  # type: ignore[return-value]

    def list_nested_types(self, handle: int, path: Sequence[int] = ()) -> list[str]:
        return self._call("list_nested_types", handle=handle, path=list(path))  # type: ignore[return-value]

    def resolve_type_name(self, handle: int, path: Sequence[int] = ()) -> str:
        return self._call("resolve_type_name", handle=handle, path=list(path))  # type: ignore[return-value]

    def all_ancestor_type_names(self, handle: int, path: Sequence[int] = ()) -> list[str]:
        return self._call("all_ancestor_type_names", handle=handle, path=list(path))  # type: ignore[return-value]

    def method_name(self, handle: int, path: Sequence[int], method_index: int) -> str:
        return self._call("method_name", handle=handle, path=list(path), method_index=method_index)  # type: ignore[return-value]

    def method_params(self, handle: int, path: Sequence[int], method_index: int) -> list[str]:
        return self._call("method_params", handle=handle, path=list(path), method_index=method_index)  # type: ignore[return-value]

    def read_path(self, handle: int, path: Sequence[int] = ()) -> str:
        return self._call("read_path", handle=handle, path=list(path))  # type: ignore[return-value]

    def read_value(self, handle: int, path: Sequence[int] = ()) -> str:
        return self._call("read_value", handle=handle, path=list(path))  # type: ignore[return-value]

    def write_path(self, handle: int, path: Sequence[int], value_handle: int) -> None:
        self._call("write_path", handle=handle, path=list(path), value_handle=value_handle)

    def invoke(self, handle: int, path: Sequence[int], method_index: int, arg_handles: Sequence[int] = ()) -> int:
        return self._call(  # type: ignore[return-value]
            "invoke",
            handle=handle,
            path=list(path),
            method_index=method_index,
            arg_handles=list(arg_handles),
        )

    def invoke_by_name(
        self,
        handle: int,
        path: Sequence[int],
        method_name: str,
        arg_handles: Sequence[int] = (),
    ) -> int:
        return self._call(  # type: ignore[return-value]
            "invoke_by_name",
            handle=handle,
            path=list(path),
            method_name=method_name,
            arg_handles=list(arg_handles),
        )

    def construct(self, type_name_or_handle: str | int, arg_handles: Sequence[int] = ()) -> int:
        return self._call("construct", target=type_name_or_handle, arg_handles=list(arg_handles))  # type: ignore[return-value]

    def is_sequence(self, handle: int, path: Sequence[int] = ()) -> bool:
        return self._call("is_sequence", handle=handle, path=list(path))  # type: ignore[return-value]

    def enumerate_items(self, handle: int, path: Sequence[int] = ()) -> list[str]:
        return self._call("enumerate_items", handle=handle, path=list(path))  # type: ignore[return-value]

    def item_at(self, handle: int, path: Sequence[int], index: int) -> int:
        return self._call("item_at", handle=handle, path=list(path), index=index)  # type: ignore[return-value]

    def push_literal(self, value: str | int | bool) -> int:
        return self._call("push_literal", value=value)  # type: ignore[return-value]

    def push_resolved(self, handle: int, path: Sequence[int] = ()) -> int:
        return self._call("push_resolved", handle=handle, path=list(path))  # type: ignore[return-value]

    def list_macros(self) -> list[str]:
        return self._call("list_macros")  # type: ignore[return-value]

    def filter_macros(self, handle: int, path: Sequence[int] = ()) -> list[int]:
        return self._call("filter_macros", handle=handle, path=list(path))  # type: ignore[return-value]

    def macro_params(self, macro_index: int) -> list[str]:
        return self._call("macro_params", macro_index=macro_index)  # type: ignore[return-value]

    def macro_description(self, macro_index: int) -> str:
        return self._call("macro_description", macro_index=macro_index)  # type: ignore[return-value]

    def run_macro(
        self,
        macro_index: int,
        handle: int,
        path: Sequence[int] = (),
        arg_handles: Sequence[int] = (),
    ) -> int:
        return self._call(  # type: ignore[return-value]
            "run_macro",
            macro_index=macro_index,
            handle=handle,
            path=list(path),
            arg_handles=list(arg_handles),
        )

    def load_macro(self, name: str, code: bytes) -> int:
        return self._call("load_macro", name=name, code=bytes(code))  # type: ignore[return-value]
