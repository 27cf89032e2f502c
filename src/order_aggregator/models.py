from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

MISSING_ID = -1


class OfferCondition(str, Enum):
    NEW = "NEW"
    AS_NEW = "AS_NEW"
    GOOD = "GOOD"
    REASONABLE = "REASONABLE"
    AVAILABLE = "AVAILABLE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> OfferCondition:
        """
        Map a wire value to a condition. Anything unrecognised becomes UNKNOWN.
        """
        if isinstance(value, OfferCondition):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.UNKNOWN


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    raise ValueError(f"Missing field: {keys[0]}")


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Field '{field}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Field '{field}' must be an integer") from e


@dataclass(frozen=True)
class Order:
    id: int
    offer_id: int
    product_id: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Order:
        return cls(
            id=_as_int(_pick(data, "id"), "id"),
            offer_id=_as_int(_pick(data, "offerId", "offer_id"), "offerId"),
            product_id=_as_int(_pick(data, "productId", "product_id"), "productId"),
        )


@dataclass(frozen=True)
class Offer:
    id: int
    condition: OfferCondition = OfferCondition.UNKNOWN

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Offer:
        return cls(
            id=_as_int(_pick(data, "id"), "id"),
            condition=OfferCondition.parse(data.get("condition")),
        )


@dataclass(frozen=True)
class Product:
    id: int
    title: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Product:
        title = data.get("title")
        return cls(id=_as_int(_pick(data, "id"), "id"), title="" if title is None else str(title))


@dataclass(frozen=True)
class EnrichedOrder:
    """
    An order merged with whatever offer/product data could be fetched.

    Offer fields are either both present or both absent (offer_id None and
    condition UNKNOWN); product id and title follow the same rule.
    """

    order_id: int
    offer_id: Optional[int] = None
    offer_condition: OfferCondition = OfferCondition.UNKNOWN
    product_id: Optional[int] = None
    product_title: Optional[str] = None

    @property
    def has_offer(self) -> bool:
        return self.offer_id is not None

    @property
    def has_product(self) -> bool:
        return self.product_id is not None

    def to_dict(self) -> Dict[str, Any]:
        """
        Legacy wire shape: absent ids render as -1, an absent condition as
        UNKNOWN and an absent title as null.
        """
        return {
            "orderId": self.order_id,
            "offerId": self.offer_id if self.offer_id is not None else MISSING_ID,
            "offerCondition": self.offer_condition.value,
            "productId": self.product_id if self.product_id is not None else MISSING_ID,
            "productTitle": self.product_title,
        }
