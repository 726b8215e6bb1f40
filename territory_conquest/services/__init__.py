"""Service layer package.

Exports the claim service consumed by the HTTP and CLI entry points.
"""

from .claim_service import ClaimResult, ClaimService, ClaimServiceConfig

__all__ = ["ClaimResult", "ClaimService", "ClaimServiceConfig"]
