"""API routers for FAAE Projetos core."""

from . import (
    auth,
    dashboard,
    files,
    notifications,
    projects,
    realtime,
    reports,
    search,
    tasks,
    time_entries,
    users,
)

__all__ = [
    "auth",
    "dashboard",
    "files",
    "notifications",
    "projects",
    "realtime",
    "reports",
    "search",
    "tasks",
    "time_entries",
    "users",
]
