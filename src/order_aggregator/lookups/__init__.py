from __future__ import annotations

from .base import (
    OfferService,
    OrderService,
    ProductService,
    as_offer_service,
    as_order_service,
    as_product_service,
)
from .memory import ServiceBundle, build_services, load_fixture

__all__ = [
    "OfferService",
    "OrderService",
    "ProductService",
    "ServiceBundle",
    "as_offer_service",
    "as_order_service",
    "as_product_service",
    "build_services",
    "load_fixture",
]
