"""Process wide application status and application type."""

from __future__ import annotations

import threading
from enum import IntEnum


class AppStatus(IntEnum):
    """Running status of the application."""

    UNKNOWN = 0
    IDLE = 1
    STARTING = 2
    RUNNING = 3
    STOPPING = 4


class AppType(IntEnum):
    """Kind of application running in this process."""

    UNKNOWN_APP = 0
    CLIENT_APP = 1
    SERVER_APP = 2


_lock = threading.Lock()
_status: AppStatus | None = None
_app_type = AppType.UNKNOWN_APP
_app_type_set = False


def get_app_status() -> AppStatus:
    """Return the application status, UNKNOWN if never set."""
    with _lock:
        return AppStatus.UNKNOWN if _status is None else _status


def set_app_status(status: AppStatus) -> None:
    """Set the application status; UNKNOWN is not allowed."""
    global _status
    status = AppStatus(status)
    if status == AppStatus.UNKNOWN:
        raise ValueError("can't set app status to UNKNOWN")
    with _lock:
        _status = status


def set_app_type(app_type: AppType) -> None:
    """Set the application type. Only the first call has an effect."""
    global _app_type, _app_type_set
    app_type = AppType(app_type)
    if app_type == AppType.UNKNOWN_APP:
        raise ValueError("can't set AppType to UNKNOWN")
    with _lock:
        if not _app_type_set:
            _app_type = app_type
            _app_type_set = True


def is_client_app() -> bool:
    """True if the application type is client."""
    return _app_type == AppType.CLIENT_APP


def is_server_app() -> bool:
    """True if the application type is server."""
    return _app_type == AppType.SERVER_APP


def _reset() -> None:
    global _status, _app_type, _app_type_set
    with _lock:
        _status = None
        _app_type = AppType.UNKNOWN_APP
        _app_type_set = False