"""Structured logging helpers (secret-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    job_id: str | None = None,
    candidate_id: str | None = None,
    route: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict. Never pass tokens or authorization codes here."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if job_id:
        context["job_id"] = job_id
    if candidate_id:
        context["candidate_id"] = candidate_id
    if route:
        context["route"] = route
    return context
