"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    owner_id: str | None = None,
    appointment_id: str | None = None,
    intent: str | None = None,
    sync_state: str | None = None,
    error_kind: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (identifiers only, never names or notes)."""
    context: dict[str, Any] = {}
    if owner_id:
        context["owner_id"] = owner_id
    if appointment_id:
        context["appointment_id"] = appointment_id
    if intent:
        context["intent"] = intent
    if sync_state:
        context["sync_state"] = sync_state
    if error_kind:
        context["error_kind"] = error_kind
    return context
