"""
The agent's identity with its primary collector: license key, run token and request headers.
The run token is only known once the agent has connected, and changes on every agent reconnect,
so readers must fetch it fresh each time.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from .constants import LOG_TAG

logger = logging.getLogger(LOG_TAG)


class AgentIdentity:
    """Thread-safe holder of the current agent identity, with connect notifications."""

    def __init__(
        self,
        license_key: str = "",
        agent_run_token: Optional[str] = None,
        request_headers_map: Optional[Dict[str, str]] = None,
    ):
        self._lock = threading.Lock()
        self._license_key = license_key
        self._agent_run_token = agent_run_token
        self._request_headers_map = dict(request_headers_map or {})
        self._connected = threading.Event()
        self._listeners: List[Callable[["AgentIdentity"], None]] = []
        if agent_run_token:
            self._connected.set()

    @property
    def license_key(self) -> str:
        with self._lock:
            return self._license_key

    @property
    def agent_run_token(self) -> Optional[str]:
        with self._lock:
            return self._agent_run_token

    @property
    def request_headers_map(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._request_headers_map)

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def connect(
        self,
        agent_run_token: str,
        request_headers_map: Optional[Dict[str, str]] = None,
        license_key: Optional[str] = None,
    ) -> None:
        """Record a (re)connection of the agent to its collector and notify listeners."""
        with self._lock:
            reconnect = self._agent_run_token is not None
            self._agent_run_token = agent_run_token
            if request_headers_map is not None:
                self._request_headers_map = dict(request_headers_map)
            if license_key is not None:
                self._license_key = license_key
            listeners = list(self._listeners)
        self._connected.set()
        logger.info(f"Agent {'reconnected' if reconnect else 'connected'} to collector")
        for listener in listeners:
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Error in agent connect listener: {e}", exc_info=True)

    def disconnect(self) -> None:
        with self._lock:
            self._agent_run_token = None
        self._connected.clear()

    def wait_until_connected(self, timeout: Optional[float] = None) -> bool:
        return self._connected.wait(timeout)

    def add_connect_listener(self, listener: Callable[["AgentIdentity"], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_connect_listener(self, listener: Callable[["AgentIdentity"], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
