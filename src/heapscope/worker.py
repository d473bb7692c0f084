"""Request loop binding an inspection service to an IPC connection."""

import logging
import traceback
from multiprocessing.connection import Connection

from heapscope.errors import InspectionProtocolError
from heapscope.service import InspectionService

logger = logging.getLogger(__name__)

READY_REQUEST_ID: int = 0


def _send_ok(connection: Connection, request_id: int, payload: dict[str, object]) -> None:
    """Send a success response.

    :param connection: IPC connection.
    :param request_id: Request identifier.
    :param payload: Response payload.
    """
    message: dict[str, object] = {
        "request_id": request_id,
        "status": "ok",
        "payload": payload,
    }
    try:
        connection.send(message)
    except (BrokenPipeError, EOFError, OSError):
        return


def _send_error(connection: Connection, request_id: int, error_type: str, error_message: str, stacktrace: str) -> None:
    """Send an error response.

    :param connection: IPC connection.
    :param request_id: Request identifier.
    :param error_type: Name of the exception class.
    :param error_message: Exception message.
    :param stacktrace: Formatted stacktrace.
    """
    message: dict[str, object] = {
        "request_id": request_id,
        "status": "error",
        "payload": {
            "error_type": error_type,
            "error_message": error_message,
            "stacktrace": stacktrace,
        },
    }
    try:
        connection.send(message)
    except (BrokenPipeError, EOFError, OSError):
        return


def _require_request_id(message: dict[str, object]) -> int:
    """Extract and validate the request identifier.

    :param message: Request message.
    :returns: Request identifier.
    :raises InspectionProtocolError: If ``request_id`` is missing or invalid.
    """
    request_id: object = message.get("request_id")
    if isinstance(request_id, int) is False:
        raise InspectionProtocolError("request_id must be an integer")
    return request_id


def _require_action(message: dict[str, object]) -> str:
    """Extract and validate the action string.

    :param message: Request message.
    :returns: Action string.
    :raises InspectionProtocolError: If ``action`` is missing or invalid.
    """
    action: object = message.get("action")
    if isinstance(action, str) is False:
        raise InspectionProtocolError("action must be a string")
    return action


def _require_int_field(message: dict[str, object], key: str) -> int:
    """Extract and validate an integer field.

    :param message: Request message.
    :param key: Field name.
    :returns: Integer field value.
    :raises InspectionProtocolError: If the field is missing or invalid.
    """
    value: object = message.get(key)
    if isinstance(value, int) is False or isinstance(value, bool) is True:
        raise InspectionProtocolError(f"{key} must be an integer")
    return value  # type: ignore[return-value]


def _require_str_field(message: dict[str, object], key: str) -> str:
    """Extract and validate a string field.

    :param message: Request message.
    :param key: Field name.
    :returns: String field value.
    :raises InspectionProtocolError: If the field is missing or invalid.
    """
    value: object = message.get(key)
    if isinstance(value, str) is False:
        raise InspectionProtocolError(f"{key} must be a string")
    return value


def _require_int_list_field(message: dict[str, object], key: str) -> list[int]:
    """Extract and validate a list of integers; a missing field is empty.

    :param message: Request message.
    :param key: Field name.
    :returns: Integer list.
    :raises InspectionProtocolError: If the field is not a list of integers.
    """
    value: object = message.get(key, [])
    if isinstance(value, (list, tuple)) is False:
        raise InspectionProtocolError(f"{key} must be a list of integers")
    for item in value:
        if isinstance(item, int) is False or isinstance(item, bool) is True:
            raise InspectionProtocolError(f"{key} must be a list of integers")
    return list(value)


def _require_bytes_field(message: dict[str, object], key: str) -> bytes:
    """Extract and validate a bytes field.

    :param message: Request message.
    :param key: Field name.
    :returns: Bytes field value.
    :raises InspectionProtocolError: If the field is missing or invalid.
    """
    value: object = message.get(key)
    if isinstance(value, (bytes, bytearray)) is False:
        raise InspectionProtocolError(f"{key} must be bytes")
    return bytes(value)


def _require_literal_field(message: dict[str, object], key: str) -> str | int | bool:
    """Extract and validate a pushed literal.

    :param message: Request message.
    :param key: Field name.
    :returns: Literal value.
    :raises InspectionProtocolError: If the field is not a str, int or bool.
    """
    value: object = message.get(key)
    if isinstance(value, (str, int, bool)) is False:
        raise InspectionProtocolError(f"{key} must be a str, int or bool")
    return value  # type: ignore[return-value]


def _require_target_field(message: dict[str, object], key: str) -> str | int:
    """Extract a type name or a handle.

    :param message: Request message.
    :param key: Field name.
    :returns: Type name or handle.
    :raises InspectionProtocolError: If the field is neither.
    """
    value: object = message.get(key)
    if isinstance(value, str) is True:
        return value  # type: ignore[return-value]
    return _require_int_field(message, key)


class InspectionWorker:
    """Serve inspection requests arriving on one connection."""

    _connection: Connection
    _service: InspectionService

    def __init__(self, connection: Connection, service: InspectionService) -> None:
        """Initialize worker state.

        :param connection: Bidirectional IPC connection to the controller.
        :param service: Service executing the requests.
        """
        self._connection = connection
        self._service = service

    def run(self) -> None:
        """Run the request loop until shutdown or end of stream."""
        _send_ok(self._connection, READY_REQUEST_ID, {"ready": True})

        should_exit: bool = False
        while should_exit is False:
            try:
                incoming: object = self._connection.recv()
            except (EOFError, OSError):
                break

            if isinstance(incoming, dict) is False:
                _send_error(
                    self._connection,
                    -1,
                    "InspectionProtocolError",
                    "Incoming message must be a dict",
                    "",
                )
                continue

            request_message: dict[str, object] = incoming
            shutdown_requested: bool = self._handle_incoming_request(request_message)
            if shutdown_requested is True:
                should_exit = True

        self._connection.close()

    def _handle_incoming_request(self, request_message: dict[str, object]) -> bool:
        """Handle one incoming request and emit a correlated response.

        :param request_message: Request dictionary.
        :returns: ``True`` when loop shutdown is requested.
        """
        try:
            request_id: int = _require_request_id(request_message)
            payload: dict[str, object] = self._execute_request(request_message)
            _send_ok(self._connection, request_id, payload)
            shutdown_obj: object = payload.get("shutdown")
            return shutdown_obj is True
        except (Exception, SystemExit) as exc:
            request_id_fallback: int = -1
            request_id_obj: object = request_message.get("request_id")
            if isinstance(request_id_obj, int) is True:
                request_id_fallback = request_id_obj
            logger.debug("Request %d failed", request_id_fallback, exc_info=True)
            _send_error(
                self._connection,
                request_id_fallback,
                type(exc).__name__,
                str(exc),
                traceback.format_exc(),
            )
            return False

    def _execute_request(self, message: dict[str, object]) -> dict[str, object]:
        """Execute one request.

        :param message: Request message.
        :returns: Response payload.
        :raises InspectionProtocolError: If request fields are invalid.
        """
        action: str = _require_action(message)
        service: InspectionService = self._service

        if action == "list_roots":
            return {"value": service.list_roots()}

        if action == "filter_roots":
            return {"value": service.filter_roots(_require_str_field(message, "type_name"))}

        if action == "push_literal":
            return {"value": service.push_literal(_require_literal_field(message, "value"))}

        if action == "list_macros":
            return {"value": service.list_macros()}

        if action == "macro_params":
            return {"value": service.macro_params(_require_int_field(message, "macro_index"))}

        if action == "macro_description":
            return {"value": service.macro_description(_require_int_field(message, "macro_index"))}

        if action == "load_macro":
            name: str = _require_str_field(message, "name")
            code: bytes = _require_bytes_field(message, "code")
            return {"value": service.load_macro(name, code)}

        if action == "list_constructors":
            target: str | int = _require_target_field(message, "target")
            return {"value": service.list_constructors(target, _require_int_list_field(message, "path"))}

        if action == "construct":
            target = _require_target_field(message, "target")
            return {"value": service.construct(target, _require_int_list_field(message, "arg_handles"))}

        if action == "shutdown":
            return {"shutdown": True}

        handle: int = _require_int_field(message, "handle")
        path: list[int] = _require_int_list_field(message, "path")

        if action == "list_fields":
            return {"value": service.list_fields(handle, path)}

        if action == "list_methods":
            return {"value": service.list_methods(handle, path)}

        if action == "list_nested_types":
            return {"value": service.list_nested_types(handle, path)}

        if action == "resolve_type_name":
            return {"value": service.resolve_type_name(handle, path)}

        if action == "all_ancestor_type_names":
            return {"value": service.all_ancestor_type_names(handle, path)}

        if action == "read_path":
            return {"value": service.read_path(handle, path)}

        if action == "read_value":
            return {"value": service.read_value(handle, path)}

        if action == "write_path":
            service.write_path(handle, path, _require_int_field(message, "value_handle"))
            return {}

        if action == "method_name":
            return {"value": service.method_name(handle, path, _require_int_field(message, "method_index"))}

        if action == "method_params":
            return {"value": service.method_params(handle, path, _require_int_field(message, "method_index"))}

        if action == "invoke":
            method_index: int = _require_int_field(message, "method_index")
            arg_handles: list[int] = _require_int_list_field(message, "arg_handles")
            return {"value": service.invoke(handle, path, method_index, arg_handles)}

        if action == "invoke_by_name":
            method_name: str = _require_str_field(message, "method_name")
            arg_handles = _require_int_list_field(message, "arg_handles")
            return {"value": service.invoke_by_name(handle, path, method_name, arg_handles)}

        if action == "is_sequence":
            return {"value": service.is_sequence(handle, path)}

        if action == "enumerate_items":
            return {"value": service.enumerate_items(handle, path)}

        if action == "item_at":
            return {"value": service.item_at(handle, path, _require_int_field(message, "index"))}

        if action == "push_resolved":
            return {"value": service.push_resolved(handle, path)}

        if action == "filter_macros":
            return {"value": service.filter_macros(handle, path)}

        if action == "run_macro":
            macro_index: int = _require_int_field(message, "macro_index")
            arg_handles = _require_int_list_field(message, "arg_handles")
            return {"value": service.run_macro(macro_index, handle, path, arg_handles)}

        raise InspectionProtocolError(f"Unsupported action: {action}")


def worker_entry(connection: Connection, service: InspectionService) -> None:
    """Serve ``service`` on ``connection`` until the controller disconnects.

    :param connection: IPC connection from the controller.
    :param service: Service executing the requests.
    """
    worker: InspectionWorker = InspectionWorker(connection, service)
    worker.run()
