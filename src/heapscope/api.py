"""User-facing entrypoints for serving and connecting to an inspection service."""

import logging
import threading
from multiprocessing.connection import Client
from multiprocessing.connection import Connection
from multiprocessing.connection import Listener

from heapscope.client import InspectionClient
from heapscope.service import InspectionService
from heapscope.worker import worker_entry

logger = logging.getLogger(__name__)

Address = str | tuple[str, int]
_JOIN_TIMEOUT_SECONDS: float = 5.0


class InspectionHost:
    """Accept controller connections and serve them one at a time."""

    _service: InspectionService
    _listener: Listener
    _authkey: bytes | None
    _thread: threading.Thread
    _is_closed: bool
    _is_serving: bool

    def __init__(self, service: InspectionService, address: Address, authkey: bytes | None = None) -> None:
        """Bind the listener.

        :param service: Service executing controller requests.
        :param address: Listener address; port ``0`` picks a free port.
        :param authkey: Shared secret required from controllers.
        """
        self._service = service
        self._authkey = authkey
        self._listener = Listener(address, authkey=authkey)
        self._thread = threading.Thread(target=self._accept_loop, name="heapscope-host", daemon=True)
        self._is_closed = False
        self._is_serving = False

    @property
    def address(self) -> Address:
        """Return the bound listener address.

        :returns: Address controllers connect to.
        """
        return self._listener.address  # type: ignore[no-any-return]

    @property
    def is_closed(self) -> bool:
        """Report whether the host was closed.

        :returns: ``True`` after ``close``.
        """
        return self._is_closed

    def start(self) -> None:
        """Start accepting connections on a daemon thread."""
        self._thread.start()

    def _accept_loop(self) -> None:
        """Serve accepted connections until the host is closed."""
        while self._is_closed is False:
            try:
                connection: Connection = self._listener.accept()
            except (OSError, EOFError):
                if self._is_closed is True:
                    break
                logger.warning("Rejected inspection connection", exc_info=True)
                continue
            if self._is_closed is True:
                connection.close()
                break
            logger.info("Controller connected to %s", self.address)
            self._is_serving = True
            try:
                worker_entry(connection, self._service)
            finally:
                self._is_serving = False
            logger.info("Controller disconnected from %s", self.address)

    def close(self) -> None:
        """Stop accepting connections.

        A controller already connected keeps its session until it disconnects.
        """
        if self._is_closed is True:
            return
        self._is_closed = True
        if self._is_serving is True:
            self._listener.close()
            return
        if self._thread.is_alive() is True:
            try:
                Client(self.address, authkey=self._authkey).close()
            except OSError:
                logger.debug("Wake-up connection to %s failed", self.address, exc_info=True)
        self._listener.close()
        if self._thread.is_alive() is True:
            self._thread.join(timeout=_JOIN_TIMEOUT_SECONDS)


def serve_inspection(service: InspectionService, address: Address, authkey: bytes | None = None) -> InspectionHost:
    """Expose ``service`` to controllers connecting on ``address``.

    :param service: Service executing controller requests.
    :param address: Listener address; port ``0`` picks a free port.
    :param authkey: Shared secret required from controllers.
    :returns: Started host.
    """
    host: InspectionHost = InspectionHost(service, address, authkey=authkey)
    host.start()
    return host


def connect_inspection(address: Address, authkey: bytes | None = None) -> InspectionClient:
    """Connect to an inspection host.

    :param address: Host address.
    :param authkey: Shared secret configured on the host.
    :returns: Ready client.
    """
    connection: Connection = Client(address, authkey=authkey)
    client: InspectionClient = InspectionClient(connection)
    client.wait_until_ready()
    return client
