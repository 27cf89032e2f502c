from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import pytest

from order_aggregator.aggregator import AggregatorService, combine
from order_aggregator.models import MISSING_ID, EnrichedOrder, Offer, OfferCondition, Order, Product
from order_aggregator.util.errors import ConfigError, FatalLookupError, LookupFailed, RecordNotFound


class _CountingLookup:
    """Returns a fixed value (or raises a fixed error) and counts calls."""

    def __init__(self, value: Any = None, error: Optional[BaseException] = None, delay: float = 0.0) -> None:
        self.value = value
        self.error = error
        self.delay = delay
        self.calls: List[int] = []
        self._lock = threading.Lock()

    def __call__(self, key: int) -> Any:
        with self._lock:
            self.calls.append(key)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


ORDER = Order(id=7, offer_id=100, product_id=200)
OFFER = Offer(id=100, condition=OfferCondition.AVAILABLE)
PRODUCT = Product(id=200, title="Widget")


def _service(
    order: _CountingLookup,
    offer: _CountingLookup,
    product: _CountingLookup,
    **kwargs: Any,
) -> AggregatorService:
    return AggregatorService(order, offer, product, **kwargs)


def test_enrich_merges_offer_and_product() -> None:
    offer = _CountingLookup(OFFER)
    product = _CountingLookup(PRODUCT)
    svc = _service(_CountingLookup(ORDER), offer, product)

    res = svc.enrich(7)

    assert res == EnrichedOrder(
        order_id=7,
        offer_id=100,
        offer_condition=OfferCondition.AVAILABLE,
        product_id=200,
        product_title="Widget",
    )
    assert offer.calls == [100]
    assert product.calls == [200]


def test_enrich_failed_offer_is_reported_as_missing() -> None:
    svc = _service(
        _CountingLookup(ORDER),
        _CountingLookup(error=LookupFailed("offer service down")),
        _CountingLookup(PRODUCT),
    )

    res = svc.enrich(7)

    assert res.to_dict() == {
        "orderId": 7,
        "offerId": MISSING_ID,
        "offerCondition": "UNKNOWN",
        "productId": 200,
        "productTitle": "Widget",
    }


def test_enrich_order_failure_is_fatal_and_skips_dependents() -> None:
    offer = _CountingLookup(OFFER)
    product = _CountingLookup(PRODUCT)
    svc = _service(_CountingLookup(error=RecordNotFound("order 99 not found")), offer, product)

    with pytest.raises(FatalLookupError) as excinfo:
        svc.enrich(99)

    assert excinfo.value.seller_id == 99
    assert isinstance(excinfo.value.__cause__, RecordNotFound)
    assert "Order service failed" in str(excinfo.value)
    assert offer.calls == []
    assert product.calls == []


@pytest.mark.parametrize(
    "error",
    [RuntimeError("transport"), LookupFailed("down"), ValueError("bad payload")],
)
def test_enrich_any_order_error_is_wrapped(error: Exception) -> None:
    offer = _CountingLookup(OFFER)
    product = _CountingLookup(PRODUCT)
    svc = _service(_CountingLookup(error=error), offer, product)

    with pytest.raises(FatalLookupError):
        svc.enrich(1)
    assert len(offer.calls) == 0
    assert len(product.calls) == 0


def test_enrich_order_returning_none_is_fatal() -> None:
    svc = _service(_CountingLookup(None), _CountingLookup(OFFER), _CountingLookup(PRODUCT))

    with pytest.raises(FatalLookupError):
        svc.enrich(1)


def test_enrich_both_dependents_failing_still_returns_result() -> None:
    svc = _service(
        _CountingLookup(ORDER),
        _CountingLookup(error=LookupFailed("offer down")),
        _CountingLookup(error=RecordNotFound("product 200 not found")),
    )

    res = svc.enrich(7)

    assert res.to_dict() == {
        "orderId": 7,
        "offerId": -1,
        "offerCondition": "UNKNOWN",
        "productId": -1,
        "productTitle": None,
    }
    assert not res.has_offer
    assert not res.has_product


@pytest.mark.parametrize(
    ("offer_ok", "product_ok", "expected"),
    [
        (True, True, {"offerId": 100, "offerCondition": "AVAILABLE", "productId": 200, "productTitle": "Widget"}),
        (False, True, {"offerId": -1, "offerCondition": "UNKNOWN", "productId": 200, "productTitle": "Widget"}),
        (True, False, {"offerId": 100, "offerCondition": "AVAILABLE", "productId": -1, "productTitle": None}),
        (False, False, {"offerId": -1, "offerCondition": "UNKNOWN", "productId": -1, "productTitle": None}),
    ],
)
def test_enrich_dependent_outcome_combinations(offer_ok: bool, product_ok: bool, expected: Dict[str, Any]) -> None:
    offer = _CountingLookup(OFFER) if offer_ok else _CountingLookup(error=LookupFailed("offer"))
    product = _CountingLookup(PRODUCT) if product_ok else _CountingLookup(error=LookupFailed("product"))
    svc = _service(_CountingLookup(ORDER), offer, product)

    res = svc.enrich(7)

    assert res.to_dict() == {"orderId": 7, **expected}
    assert offer.calls == [100]
    assert product.calls == [200]


def test_combine_keeps_dependent_fields_paired() -> None:
    only_product = combine(ORDER, None, PRODUCT)
    only_offer = combine(ORDER, OFFER, None)

    assert only_product.offer_id is None
    assert only_product.offer_condition is OfferCondition.UNKNOWN
    assert (only_product.product_id, only_product.product_title) == (200, "Widget")
    assert (only_offer.offer_id, only_offer.offer_condition) == (100, OfferCondition.AVAILABLE)
    assert only_offer.product_id is None
    assert only_offer.product_title is None


def test_enrich_is_idempotent() -> None:
    svc = _service(_CountingLookup(ORDER), _CountingLookup(OFFER), _CountingLookup(error=LookupFailed("x")))

    first = svc.enrich(7)
    second = svc.enrich(7)

    assert first == second


def test_slow_failing_product_does_not_affect_offer() -> None:
    offer = _CountingLookup(OFFER)
    product = _CountingLookup(error=LookupFailed("timeout upstream"), delay=0.2)
    svc = _service(_CountingLookup(ORDER), offer, product)

    res = svc.enrich(7)

    assert res.offer_id == 100
    assert res.offer_condition is OfferCondition.AVAILABLE
    assert res.product_id is None


def test_dependent_lookups_run_concurrently() -> None:
    # Each lookup waits for the other to have started; a sequential
    # implementation would time out on the barrier and both would be missing.
    barrier = threading.Barrier(2, timeout=5)

    def _offer(offer_id: int) -> Offer:
        barrier.wait()
        return OFFER

    def _product(product_id: int) -> Product:
        barrier.wait()
        return PRODUCT

    svc = AggregatorService(lambda seller_id: ORDER, _offer, _product)

    res = svc.enrich(7)

    assert res.has_offer
    assert res.has_product


def test_enrich_waits_for_slow_dependent_after_fast_failure() -> None:
    finished = threading.Event()

    def _product(product_id: int) -> Product:
        time.sleep(0.1)
        finished.set()
        return PRODUCT

    def _offer(offer_id: int) -> Offer:
        raise LookupFailed("fast failure")

    svc = AggregatorService(lambda seller_id: ORDER, _offer, _product)

    res = svc.enrich(7)

    assert finished.is_set()
    assert res.product_title == "Widget"


def test_dependent_returning_none_is_missing() -> None:
    svc = _service(_CountingLookup(ORDER), _CountingLookup(None), _CountingLookup(PRODUCT))

    res = svc.enrich(7)

    assert res.offer_id is None
    assert res.offer_condition is OfferCondition.UNKNOWN


def test_dependent_base_exception_is_contained() -> None:
    class _Abort(BaseException):
        pass

    svc = _service(_CountingLookup(ORDER), _CountingLookup(error=_Abort()), _CountingLookup(PRODUCT))

    res = svc.enrich(7)

    assert res.offer_id is None
    assert res.product_id == 200


def test_shared_executor_is_left_running() -> None:
    with ThreadPoolExecutor(max_workers=2) as pool:
        svc = _service(_CountingLookup(ORDER), _CountingLookup(OFFER), _CountingLookup(PRODUCT), executor=pool)
        assert svc.enrich(7).has_offer
        # Still usable after enrich() returns
        assert pool.submit(lambda: 1).result() == 1


def test_soft_failures_log_reason(caplog: pytest.LogCaptureFixture) -> None:
    svc = _service(
        _CountingLookup(ORDER),
        _CountingLookup(error=RecordNotFound("offer 100 not found")),
        _CountingLookup(error=LookupFailed("product service down")),
    )

    with caplog.at_level(logging.DEBUG, logger="order_aggregator"):
        svc.enrich(7)

    soft = {r.step: r for r in caplog.records if getattr(r, "phase", None) == "soft_error"}
    assert soft["offer"].reason == "not_found"
    assert soft["offer"].levelno == logging.WARNING
    assert soft["product"].reason == "error"
    assert soft["product"].levelno == logging.ERROR
    assert soft["product"].ref == 200


def test_enrich_logs_state_transitions(caplog: pytest.LogCaptureFixture) -> None:
    svc = _service(_CountingLookup(ORDER), _CountingLookup(OFFER), _CountingLookup(PRODUCT))

    with caplog.at_level(logging.DEBUG, logger="order_aggregator"):
        svc.enrich(7)

    phases = [r.phase for r in caplog.records if getattr(r, "step", None) in {"enrich", "order"}]
    assert phases == [
        "start",
        "order_fetching",
        "order_fetched",
        "dependents_in_flight",
        "dependents_joined",
        "merged",
    ]
    merged = [r for r in caplog.records if getattr(r, "phase", None) == "merged"][0]
    assert merged.duration_ms >= 0


def test_rejects_collaborator_that_is_not_a_lookup() -> None:
    with pytest.raises(ConfigError):
        AggregatorService(object(), _CountingLookup(OFFER), _CountingLookup(PRODUCT))
