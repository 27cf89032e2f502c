from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

import requests
from requests.adapters import HTTPAdapter

from ..logging import get_logger
from ..models import Offer, Order, Product
from ..util.errors import ConfigError, LookupFailed, RecordNotFound
from .memory import ServiceBundle

LOG = get_logger(__name__)

T = TypeVar("T")

DEFAULT_HTTP_TIMEOUT = 5.0


def make_session(pool_size: Optional[int] = None) -> requests.Session:
    """
    Create a Session whose connection pool is sized for the expected number of
    concurrent lookups.
    """
    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    if pool_size is not None and pool_size >= 1:
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
    return session


class _HttpLookup:
    """GET {base_url}/{resource}/{key}, decoded with a model factory."""

    resource = ""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        if not base_url:
            raise ConfigError("HTTP lookups require a base URL")
        self.base_url = base_url.rstrip("/")
        self.session = session or make_session()
        self.timeout = timeout

    def _url(self, key: int) -> str:
        return f"{self.base_url}/{self.resource}/{key}"

    def _fetch(self, key: int, factory: Callable[[Mapping[str, Any]], T]) -> T:
        url = self._url(key)
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise LookupFailed(f"GET {url} failed: {e}") from e
        if resp.status_code == 404:
            raise RecordNotFound(f"{self.resource} {key} not found")
        if not 200 <= resp.status_code < 300:
            raise LookupFailed(f"GET {url} returned HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as e:
            raise LookupFailed(f"GET {url} returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise LookupFailed(f"GET {url} returned {type(body).__name__}, expected an object")
        try:
            return factory(body)
        except ValueError as e:
            raise LookupFailed(f"GET {url} returned an invalid {self.resource} record: {e}") from e


class HttpOrderService(_HttpLookup):
    resource = "orders"

    def get_order(self, seller_id: int) -> Order:
        return self._fetch(seller_id, Order.from_dict)


class HttpOfferService(_HttpLookup):
    resource = "offers"

    def get_offer(self, offer_id: int) -> Offer:
        return self._fetch(offer_id, Offer.from_dict)


class HttpProductService(_HttpLookup):
    resource = "products"

    def get_product(self, product_id: int) -> Product:
        return self._fetch(product_id, Product.from_dict)


def build_http_services(
    base_url: str,
    *,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    pool_size: Optional[int] = None,
) -> ServiceBundle:
    """All three services share one session and its connection pool."""
    session = make_session(pool_size)
    kwargs: Dict[str, Any] = {"session": session, "timeout": timeout}
    LOG.debug("Using HTTP lookups", extra={"base_url": base_url, "pool_size": pool_size})
    return ServiceBundle(
        order=HttpOrderService(base_url, **kwargs),
        offer=HttpOfferService(base_url, **kwargs),
        product=HttpProductService(base_url, **kwargs),
    )
