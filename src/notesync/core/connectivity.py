"""Connectivity monitoring for notesync.

A ConnectivityMonitor tracks whether the remote authority is reachable and
tells subscribers about online/offline transitions. Only transitions are
emitted; repeated observations of the same state are silent.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "ConnectivityMonitor",
    "SocketConnectivityMonitor",
    "ManualConnectivityMonitor",
]

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Base class holding the online flag and the subscriber list."""

    def __init__(self, online: bool = False) -> None:
        self._online = online
        self._state_lock = threading.Lock()
        self._listeners: List[ConnectivityListener] = []
        self._listeners_lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        with self._state_lock:
            return self._online

    def subscribe(self, fn: ConnectivityListener) -> Callable[[], None]:
        """Register fn(online) for transitions. Returns an unsubscribe callable."""
        with self._listeners_lock:
            self._listeners.append(fn)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if fn in self._listeners:
                    self._listeners.remove(fn)

        return unsubscribe

    def start(self) -> None:
        """Begin observing connectivity."""

    def stop(self) -> None:
        """Stop observing connectivity."""

    def check_now(self) -> bool:
        """Observe connectivity once and return the current state."""
        return self.is_online

    def _set_online(self, online: bool) -> None:
        with self._state_lock:
            if online == self._online:
                return
            self._online = online

        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        with self._listeners_lock:
            listeners = list(self._listeners)
        for fn in listeners:
            try:
                fn(online)
            except Exception as e:
                logger.error(f"Connectivity listener error: {e}")


class ManualConnectivityMonitor(ConnectivityMonitor):
    """Monitor whose state is set explicitly by the caller."""

    def set_online(self, online: bool) -> None:
        self._set_online(bool(online))


class SocketConnectivityMonitor(ConnectivityMonitor):
    """Polls TCP reachability of the remote host on a daemon thread.

    Attributes:
        host: Remote host name or address
        port: Remote TCP port
        interval: Seconds between probes
        timeout: Connect timeout for each probe
    """

    def __init__(
        self,
        host: str,
        port: int,
        interval: float = 5.0,
        timeout: float = 3.0,
    ) -> None:
        super().__init__(online=False)
        self.host = host
        self.port = port
        self.interval = interval
        self.timeout = timeout
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def probe(self) -> bool:
        """Try to open a TCP connection to host:port."""
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logger.debug(f"Connectivity probe to {self.host}:{self.port} failed: {e}")
            return False

    def check_now(self) -> bool:
        online = self.probe()
        self._set_online(online)
        return online

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="notesync-connectivity", daemon=True
        )
        self._thread.start()
        logger.info(
            f"Connectivity monitor started for {self.host}:{self.port} "
            f"(every {self.interval}s)"
        )

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.timeout + 1)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.check_now()
            self._stop_event.wait(self.interval)
