from __future__ import annotations

import logging
from concurrent.futures import Executor
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from .logging import StepTimers, get_logger, log_event
from .lookups.base import as_offer_service, as_order_service, as_product_service
from .models import EnrichedOrder, Offer, OfferCondition, Order, Product
from .util.concurrency import Outcome, join_all
from .util.errors import FatalLookupError, RecordNotFound, SoftLookupError

LOG = get_logger(__name__)

T = TypeVar("T")


class EnrichState(str, Enum):
    START = "start"
    ORDER_FETCHING = "order_fetching"
    ORDER_FAILED = "order_failed"
    ORDER_FETCHED = "order_fetched"
    DEPENDENTS_IN_FLIGHT = "dependents_in_flight"
    DEPENDENTS_JOINED = "dependents_joined"
    MERGED = "merged"


def combine(order: Order, offer: Optional[Offer], product: Optional[Product]) -> EnrichedOrder:
    """
    Merge an order with whichever dependents were fetched. Pure and total:
    an absent offer gives no offer id and UNKNOWN condition, an absent
    product gives no product id and no title.
    """
    return EnrichedOrder(
        order_id=order.id,
        offer_id=offer.id if offer is not None else None,
        offer_condition=offer.condition if offer is not None else OfferCondition.UNKNOWN,
        product_id=product.id if product is not None else None,
        product_title=product.title if product is not None else None,
    )


class AggregatorService:
    """
    Enriches orders with offer and product details.

    The order lookup is mandatory; its failure raises FatalLookupError. The
    offer and product lookups run concurrently and either may fail on its
    own: a failed dependent is logged and left out of the merge.

    When an executor is given it is shared by every enrich() call and must
    have room for two lookups per concurrent request. Without one, each call
    uses a two-worker pool that is released before enrich() returns.
    """

    def __init__(
        self,
        order_service: Any,
        offer_service: Any,
        product_service: Any,
        *,
        executor: Optional[Executor] = None,
    ) -> None:
        self.order_service = as_order_service(order_service)
        self.offer_service = as_offer_service(offer_service)
        self.product_service = as_product_service(product_service)
        self.executor = executor

    def enrich(self, seller_id: int) -> EnrichedOrder:
        timers = StepTimers()
        log_event(LOG, logging.DEBUG, "Enrichment started", step="enrich", phase=EnrichState.START.value,
                  timers=timers, seller_id=seller_id)

        order = self._get_order(seller_id, timers)

        log_event(LOG, logging.DEBUG, "Dependent lookups started", step="enrich",
                  phase=EnrichState.DEPENDENTS_IN_FLIGHT.value, seller_id=seller_id, order_id=order.id)
        offer_outcome, product_outcome = join_all(
            [
                self._task("offer", order.offer_id, self.offer_service.get_offer, timers, seller_id),
                self._task("product", order.product_id, self.product_service.get_product, timers, seller_id),
            ],
            executor=self.executor,
        )
        offer = self._settle("offer", order.offer_id, offer_outcome, timers, seller_id)
        product = self._settle("product", order.product_id, product_outcome, timers, seller_id)
        log_event(LOG, logging.DEBUG, "Dependent lookups joined", step="enrich",
                  phase=EnrichState.DEPENDENTS_JOINED.value, seller_id=seller_id,
                  offer_found=offer is not None, product_found=product is not None)

        enriched = combine(order, offer, product)
        log_event(LOG, logging.INFO, "Order enriched", step="enrich", phase=EnrichState.MERGED.value,
                  timers=timers, seller_id=seller_id, order_id=order.id,
                  offer_found=enriched.has_offer, product_found=enriched.has_product)
        return enriched

    def _get_order(self, seller_id: int, timers: StepTimers) -> Order:
        log_event(LOG, logging.DEBUG, f"Fetching order for seller {seller_id}", step="order",
                  phase=EnrichState.ORDER_FETCHING.value, timers=timers, timer_key="order", seller_id=seller_id)
        try:
            order = self.order_service.get_order(seller_id)
            if order is None:
                raise RecordNotFound(f"no order returned for seller {seller_id}")
        except Exception as e:
            log_event(LOG, logging.ERROR, f"Order service failed for seller {seller_id}", step="order",
                      phase=EnrichState.ORDER_FAILED.value, timers=timers, timer_key="order",
                      exc_info=e, seller_id=seller_id, error=str(e))
            raise FatalLookupError(f"Order service failed for seller {seller_id}: {e}", seller_id=seller_id) from e
        log_event(LOG, logging.DEBUG, f"Order {order.id} for seller {seller_id} retrieved", step="order",
                  phase=EnrichState.ORDER_FETCHED.value, timers=timers, timer_key="order", seller_id=seller_id,
                  order_id=order.id)
        return order

    @staticmethod
    def _task(
        dependency: str,
        ref: int,
        fetch: Callable[[int], T],
        timers: StepTimers,
        seller_id: int,
    ) -> Callable[[], T]:
        def _run() -> T:
            log_event(LOG, logging.DEBUG, f"Get {dependency} by id {ref} task started", step=dependency,
                      phase="start", timers=timers, seller_id=seller_id, ref=ref)
            return fetch(ref)

        return _run

    def _settle(
        self,
        dependency: str,
        ref: int,
        outcome: Outcome[T],
        timers: StepTimers,
        seller_id: int,
    ) -> Optional[T]:
        """
        Turn a joined lookup outcome into a record or None. Failures are
        logged with a reason (not_found, error or empty) and go no further.
        """
        if outcome.error is not None:
            soft = SoftLookupError.from_exception(dependency, ref, outcome.error)
            level = logging.WARNING if soft.reason == "not_found" else logging.ERROR
            log_event(LOG, level, str(soft), step=dependency, phase="soft_error", timers=timers,
                      exc_info=outcome.error if soft.reason == "error" else None,
                      seller_id=seller_id, ref=ref, reason=soft.reason, error=str(outcome.error))
            return None
        if outcome.value is None:
            log_event(LOG, logging.WARNING, f"{dependency} lookup for {ref} returned nothing", step=dependency,
                      phase="soft_error", timers=timers, seller_id=seller_id, ref=ref, reason="empty")
            return None
        log_event(LOG, logging.DEBUG, f"{dependency.capitalize()} {ref} retrieved", step=dependency,
                  phase="complete", timers=timers, seller_id=seller_id, ref=ref)
        return outcome.value
