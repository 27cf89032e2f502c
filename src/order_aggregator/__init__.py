from __future__ import annotations

from .aggregator import AggregatorService, EnrichState, combine
from .models import MISSING_ID, EnrichedOrder, Offer, OfferCondition, Order, Product
from .util.errors import FatalLookupError, LookupFailed, RecordNotFound, SoftLookupError

__version__ = "0.1.0"

__all__ = [
    "AggregatorService",
    "EnrichState",
    "EnrichedOrder",
    "FatalLookupError",
    "LookupFailed",
    "MISSING_ID",
    "Offer",
    "OfferCondition",
    "Order",
    "Product",
    "RecordNotFound",
    "SoftLookupError",
    "combine",
]
