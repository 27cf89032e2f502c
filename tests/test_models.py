from __future__ import annotations

import pytest

from order_aggregator.models import EnrichedOrder, Offer, OfferCondition, Order, Product
from order_aggregator.util.errors import (
    ConfigError,
    ExitCode,
    FatalLookupError,
    LookupFailed,
    RecordNotFound,
    SoftLookupError,
    as_exit_code,
)


def test_offer_condition_parse_falls_back_to_unknown() -> None:
    assert OfferCondition.parse("available") is OfferCondition.AVAILABLE
    assert OfferCondition.parse(" AS_NEW ") is OfferCondition.AS_NEW
    assert OfferCondition.parse("BROKEN") is OfferCondition.UNKNOWN
    assert OfferCondition.parse(None) is OfferCondition.UNKNOWN
    assert OfferCondition.parse(3) is OfferCondition.UNKNOWN


def test_order_from_dict_accepts_camel_and_snake_case() -> None:
    assert Order.from_dict({"id": 7, "offerId": 100, "productId": "200"}) == Order(7, 100, 200)
    assert Order.from_dict({"id": 7, "offer_id": 100, "product_id": 200}) == Order(7, 100, 200)


@pytest.mark.parametrize(
    "payload",
    [
        {"offerId": 1, "productId": 2},
        {"id": 7, "productId": 2},
        {"id": "seven", "offerId": 1, "productId": 2},
        {"id": True, "offerId": 1, "productId": 2},
    ],
)
def test_order_from_dict_rejects_bad_payloads(payload) -> None:
    with pytest.raises(ValueError):
        Order.from_dict(payload)


def test_offer_and_product_from_dict() -> None:
    assert Offer.from_dict({"id": 100, "condition": "GOOD"}) == Offer(100, OfferCondition.GOOD)
    assert Offer.from_dict({"id": 100}).condition is OfferCondition.UNKNOWN
    assert Product.from_dict({"id": 200, "title": "Widget"}) == Product(200, "Widget")
    assert Product.from_dict({"id": 200}).title == ""


def test_enriched_order_defaults_to_all_missing() -> None:
    res = EnrichedOrder(order_id=7)

    assert not res.has_offer
    assert not res.has_product
    assert res.to_dict() == {
        "orderId": 7,
        "offerId": -1,
        "offerCondition": "UNKNOWN",
        "productId": -1,
        "productTitle": None,
    }


def test_soft_lookup_error_reason() -> None:
    not_found = SoftLookupError.from_exception("offer", 100, RecordNotFound("offer 100 not found"))
    failed = SoftLookupError.from_exception("product", 200, LookupFailed("down"))

    assert not_found.reason == "not_found"
    assert not_found.dependency == "offer"
    assert failed.reason == "error"
    assert "product lookup failed for 200" in str(failed)


def test_as_exit_code() -> None:
    assert as_exit_code(ConfigError("x")) == ExitCode.CONFIG_ERROR
    assert as_exit_code(ValueError("x")) == ExitCode.CONFIG_ERROR
    assert as_exit_code(FatalLookupError("x", seller_id=1)) == ExitCode.ORDER_ERROR
    assert as_exit_code(RecordNotFound("x")) == ExitCode.LOOKUP_ERROR
    assert as_exit_code(RuntimeError("x")) == 1
