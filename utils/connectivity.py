"""Network reachability and internet access monitoring."""

import socket
import threading
from typing import Callable, List, Optional

import requests

from config.settings import settings
from utils.logger import get_logger

logger = get_logger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """
    Tracks whether the device can actually reach the internet.

    A network route alone is not enough: after the DNS-port probe succeeds,
    an HTTP probe confirms real access when a probe URL is configured.
    Listeners are called with the new online flag on every transition.
    """

    def __init__(
        self,
        probe_hosts: Optional[List[str]] = None,
        probe_url: Optional[str] = None,
        check_interval: Optional[float] = None,
        timeout: float = 3.0
    ):
        self.probe_hosts = probe_hosts if probe_hosts is not None else settings.CONNECTIVITY_PROBE_HOSTS
        self.probe_url = probe_url if probe_url is not None else settings.CONNECTIVITY_PROBE_URL
        self.check_interval = check_interval or settings.CONNECTIVITY_CHECK_INTERVAL
        self.timeout = timeout

        self._is_online = False
        self._listeners: List[ConnectivityListener] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_online(self) -> bool:
        return self._is_online

    @property
    def connection_info(self) -> str:
        return "Connected" if self._is_online else "Offline"

    def add_listener(self, listener: ConnectivityListener):
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def has_network(self) -> bool:
        """Check whether any probe host accepts a TCP connection on port 53."""
        for host in self.probe_hosts:
            try:
                with socket.create_connection((host, 53), timeout=self.timeout):
                    return True
            except OSError:
                continue
        return False

    def has_internet_access(self) -> bool:
        """Check that an HTTP request actually gets through."""
        if not self.probe_url:
            return True
        try:
            response = requests.head(self.probe_url, timeout=self.timeout, allow_redirects=True)
            return response.status_code < 500
        except requests.RequestException as e:
            logger.debug(f"Internet probe failed: {e}")
            return False

    def check_connection(self) -> bool:
        """One-time check of network route and internet access."""
        if not self.has_network():
            return False
        return self.has_internet_access()

    def refresh(self) -> bool:
        """Run a check and publish the result."""
        online = self.check_connection()
        self.set_online(online)
        return online

    def set_online(self, online: bool):
        """Record a connectivity state, notifying listeners if it changed."""
        with self._lock:
            was_online = self._is_online
            self._is_online = online
            listeners = list(self._listeners)

        if was_online == online:
            return

        logger.info(f"Connectivity changed: {'online' if online else 'offline'} (was {'online' if was_online else 'offline'})")
        for listener in listeners:
            try:
                listener(online)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}", exc_info=True)

    def start(self):
        """Do an initial check and keep polling on a background thread."""
        if self._thread is not None:
            return
        self.refresh()
        logger.info(f"Initial connectivity: {self.connection_info}")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._monitor_loop, name="trailzap-connectivity", daemon=True)
        self._thread.start()

    def _monitor_loop(self):
        while not self._stop_event.wait(self.check_interval):
            try:
                self.refresh()
            except Exception as e:
                logger.error(f"Connectivity check failed: {e}", exc_info=True)

    def stop(self):
        self._stop_event.set()
        self._thread = None
