"""Territory conquest engine package."""

from .errors import CatalogLookupFailure, ClaimError
from .models import ClaimRequest, Coordinate, Territory
from .services import ClaimResult, ClaimService, ClaimServiceConfig

__all__ = [
    "CatalogLookupFailure",
    "ClaimError",
    "ClaimRequest",
    "Coordinate",
    "Territory",
    "ClaimResult",
    "ClaimService",
    "ClaimServiceConfig",
]
