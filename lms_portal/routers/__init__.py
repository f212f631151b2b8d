from . import health, auth, modules, attendance, grades, dashboard

__all__ = [
    "health",
    "auth",
    "modules",
    "attendance",
    "grades",
    "dashboard"
]
