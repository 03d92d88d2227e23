"""
Operator Permissions
=====================
Who is logged in and what they may do.

The control path only needs the PermissionOracle protocol:
a capability check plus change notifications (login, logout,
role change). PermissionService is the in-memory session used
by the console; credentials are verified elsewhere.
"""

from enum import Enum
import logging
import threading
from typing import Callable, Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


class Permission(Enum):
    VIEW_HOME = "ViewHome"
    CONTROL_DEVICE = "ControlDevice"
    ALL = "All"


def parse_permissions(names: Iterable[str]) -> frozenset:
    """Convert permission names (either form) to Permission members."""
    lookup = {}
    for perm in Permission:
        lookup[perm.value.lower()] = perm
        lookup[perm.name.lower()] = perm
    result = set()
    for name in names:
        perm = lookup.get(name.strip().lower())
        if perm is None:
            raise ValueError(f"Unknown permission: {name}")
        result.add(perm)
    return frozenset(result)


class PermissionOracle(Protocol):
    """Protocol consumed by the control gate."""

    def has_control_capability(self) -> bool: ...
    def subscribe(self, listener: Callable[[], None]) -> None: ...


class PermissionService:
    """
    Current operator session.

    Listeners are called with no arguments after every login,
    logout or permission change.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._username: Optional[str] = None
        self._permissions: frozenset = frozenset()
        self._listeners: list = []

    @property
    def is_logged_in(self) -> bool:
        return self._username is not None

    @property
    def current_user(self) -> Optional[str]:
        return self._username

    @property
    def permissions(self) -> frozenset:
        return self._permissions

    def login(self, username: str, permissions: Iterable[Permission]):
        with self._lock:
            self._username = username
            self._permissions = frozenset(permissions)
        logger.info(
            "Login: %s with permissions: %s",
            username, ", ".join(sorted(p.value for p in self._permissions)),
        )
        self._notify()

    def logout(self):
        with self._lock:
            user = self._username
            self._username = None
            self._permissions = frozenset()
        logger.info("Logout: %s", user)
        self._notify()

    def set_permissions(self, permissions: Iterable[Permission]):
        """Replace the current user's permissions (role change)."""
        with self._lock:
            if self._username is None:
                raise RuntimeError("No user logged in")
            self._permissions = frozenset(permissions)
        logger.info("Permissions changed for %s", self._username)
        self._notify()

    def has_permission(self, permission: Permission) -> bool:
        return permission in self._permissions

    def has_control_capability(self) -> bool:
        return self.has_permission(Permission.CONTROL_DEVICE)

    def subscribe(self, listener: Callable[[], None]):
        with self._lock:
            self._listeners.append(listener)

    def _notify(self):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Permission listener failed")
