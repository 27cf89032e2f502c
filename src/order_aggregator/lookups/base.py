from __future__ import annotations

from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from ..models import Offer, Order, Product
from ..util.errors import ConfigError

T = TypeVar("T")


@runtime_checkable
class OrderService(Protocol):
    """
    Fetches the order placed with a seller. Raises on absence or failure;
    RecordNotFound is preferred for absence.
    """

    def get_order(self, seller_id: int) -> Order:
        ...


@runtime_checkable
class OfferService(Protocol):
    def get_offer(self, offer_id: int) -> Offer:
        ...


@runtime_checkable
class ProductService(Protocol):
    def get_product(self, product_id: int) -> Product:
        ...


class CallableOrderService:
    def __init__(self, func: Callable[[int], Order]) -> None:
        self._func = func

    def get_order(self, seller_id: int) -> Order:
        return self._func(seller_id)


class CallableOfferService:
    def __init__(self, func: Callable[[int], Offer]) -> None:
        self._func = func

    def get_offer(self, offer_id: int) -> Offer:
        return self._func(offer_id)


class CallableProductService:
    def __init__(self, func: Callable[[int], Product]) -> None:
        self._func = func

    def get_product(self, product_id: int) -> Product:
        return self._func(product_id)


def _adapt(candidate: Any, protocol: type, wrapper: Callable[[Any], T], label: str) -> T:
    if isinstance(candidate, protocol):
        return candidate  # type: ignore[return-value]
    if callable(candidate):
        return wrapper(candidate)
    raise ConfigError(f"{label} must implement {protocol.__name__} or be a callable, got {type(candidate).__name__}")


def as_order_service(candidate: Any) -> OrderService:
    """Accept an OrderService or a plain ``seller_id -> Order`` callable."""
    return _adapt(candidate, OrderService, CallableOrderService, "order service")


def as_offer_service(candidate: Any) -> OfferService:
    return _adapt(candidate, OfferService, CallableOfferService, "offer service")


def as_product_service(candidate: Any) -> ProductService:
    return _adapt(candidate, ProductService, CallableProductService, "product service")
