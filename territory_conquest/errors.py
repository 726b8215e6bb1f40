"""Central error types used across the engine.

Every claim failure is a ``ClaimError`` subclass with a stable ``code`` and
an HTTP-equivalent ``status`` so callers can map failures without inspecting
messages.
"""

from __future__ import annotations

from typing import Any, Dict


class ClaimError(RuntimeError):
    """Base error for a claim that could not be applied."""

    code = "ClaimError"
    status = 500
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class InvalidPath(ClaimError):
    """Raised when the path is too short or does not close into a polygon."""

    code = "InvalidPath"
    status = 400
    default_message = "Invalid path"


class InvalidDuration(ClaimError):
    code = "InvalidDuration"
    status = 400
    default_message = "Invalid duration"


class TerritoryTooSmall(ClaimError):
    code = "TerritoryTooSmall"
    status = 400
    default_message = "The territory is too small"


class AreaTooLarge(ClaimError):
    code = "AreaTooLarge"
    status = 400
    default_message = "The territory area exceeds your current limit"


class PaceInsufficient(ClaimError):
    """Raised when the attacker ran slower than the territory's required pace."""

    code = "PaceInsufficient"
    status = 400

    def __init__(self, required_pace: float, message: str | None = None) -> None:
        self.required_pace = required_pace
        super().__init__(
            message
            or f"You need a pace of {required_pace:.2f} min/km or faster to steal this territory"
        )


class TerritoryProtected(ClaimError):
    code = "TerritoryProtected"
    status = 403
    default_message = "The territory is temporarily protected"


class CooldownActive(ClaimError):
    """Raised while the steal cooldown on a territory has not elapsed."""

    code = "CooldownActive"
    status = 429
    default_message = "You must wait before attacking this territory again"

    def __init__(self, remaining_ms: int, message: str | None = None) -> None:
        self.remaining_ms = max(int(remaining_ms), 0)
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["cooldown"] = self.remaining_ms
        return payload


class ShieldActive(ClaimError):
    code = "ShieldActive"
    status = 403
    default_message = "The territory is shielded"


class AuthFailure(ClaimError):
    code = "AuthFailure"
    status = 401
    default_message = "Missing or invalid authentication token"


class PersistenceFailure(ClaimError):
    """Raised when the core mutation could not be committed."""

    code = "PersistenceFailure"
    status = 500
    default_message = "Unable to persist the claim"


class ConcurrentModification(PersistenceFailure):
    """Raised by ``apply_claim`` when a row changed since the snapshot was read."""

    code = "ConcurrentModification"


class CatalogLookupFailure(RuntimeError):
    """Raised by catalog reads (POIs, missions, challenges, clans).

    Never surfaces as a claim failure; the side-effect coordinator logs and
    skips it.
    """


__all__ = [
    "ClaimError",
    "InvalidPath",
    "InvalidDuration",
    "TerritoryTooSmall",
    "AreaTooLarge",
    "PaceInsufficient",
    "TerritoryProtected",
    "CooldownActive",
    "ShieldActive",
    "AuthFailure",
    "PersistenceFailure",
    "ConcurrentModification",
    "CatalogLookupFailure",
]
