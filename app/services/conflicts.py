from __future__ import annotations

from app.core.errors import ConflictSource

# PostgreSQL SQLSTATE for exclusion_violation
EXCLUSION_VIOLATION = "23P01"

_OVERLAP_SIGNATURES = (
    "overlap",
    "exclusion constraint",
    "conflicting key value",
    "time_range",
)


def _sqlstate(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, exc):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code:
            return str(code)
    return None


def classify_store_error(exc: BaseException) -> ConflictSource | None:
    """Return ``CONFIRMED_APPOINTMENT`` when ``exc`` is the overlap constraint firing."""
    code = _sqlstate(exc)
    if code == EXCLUSION_VIOLATION:
        return ConflictSource.CONFIRMED_APPOINTMENT
    message = str(getattr(exc, "orig", None) or exc).lower()
    if any(signature in message for signature in _OVERLAP_SIGNATURES):
        return ConflictSource.CONFIRMED_APPOINTMENT
    return None
