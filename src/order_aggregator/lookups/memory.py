from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, TypeVar

import yaml

from ..logging import get_logger
from ..models import Offer, Order, Product
from ..util.errors import ConfigError, LookupFailed, RecordNotFound

LOG = get_logger(__name__)

T = TypeVar("T")

SERVICE_NAMES = ("order", "offer", "product")


class _InMemoryStore(Generic[T]):
    """
    Dict-backed record store with optional simulated latency and outage.
    Reads only; the records never change after construction.
    """

    kind = "record"

    def __init__(self, records: Mapping[int, T], *, delay_ms: int = 0, failing: bool = False) -> None:
        self._records: Dict[int, T] = dict(records)
        self.delay_ms = max(0, int(delay_ms))
        self.failing = failing

    def __len__(self) -> int:
        return len(self._records)

    def _lookup(self, key: int) -> T:
        if self.delay_ms:
            time.sleep(self.delay_ms / 1000.0)
        if self.failing:
            raise LookupFailed(f"{self.kind} service unavailable")
        try:
            return self._records[key]
        except KeyError:
            raise RecordNotFound(f"{self.kind} {key} not found") from None


class InMemoryOrderService(_InMemoryStore[Order]):
    """Orders keyed by seller id."""

    kind = "order"

    def get_order(self, seller_id: int) -> Order:
        return self._lookup(seller_id)


class InMemoryOfferService(_InMemoryStore[Offer]):
    kind = "offer"

    def get_offer(self, offer_id: int) -> Offer:
        return self._lookup(offer_id)


class InMemoryProductService(_InMemoryStore[Product]):
    kind = "product"

    def get_product(self, product_id: int) -> Product:
        return self._lookup(product_id)


@dataclass(frozen=True)
class ServiceBundle:
    order: Any
    offer: Any
    product: Any


def _parse_fixture_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Data file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except Exception as e:
        raise ConfigError(f"Failed to parse data file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level data document must be an object")
    return data


def _rows(data: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    rows = data.get(key) or []
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ConfigError(f"Data field '{key}' must be a list of objects")
    return rows


def _index_orders(rows: Iterable[Mapping[str, Any]]) -> Dict[int, Order]:
    # Orders are looked up by seller; the order id doubles as seller id when none is given.
    out: Dict[int, Order] = {}
    for row in rows:
        order = Order.from_dict(row)
        seller = row.get("sellerId", row.get("seller_id", order.id))
        out[int(seller)] = order
    return out


def build_services(data: Mapping[str, Any]) -> ServiceBundle:
    """
    Build in-memory services from a fixture document:

      orders:   [{sellerId, id, offerId, productId}, ...]
      offers:   [{id, condition}, ...]
      products: [{id, title}, ...]
      failing:  [offer, product]          # optional simulated outages
      delay_ms: {offer: 50, product: 200} # optional simulated latency
    """
    failing_raw = data.get("failing") or []
    if isinstance(failing_raw, str):
        failing_raw = [f.strip() for f in failing_raw.split(",") if f.strip()]
    failing = {str(name).lower() for name in failing_raw}
    delays_raw = data.get("delay_ms") or {}
    if not isinstance(delays_raw, dict):
        raise ConfigError("Data field 'delay_ms' must be an object")
    unknown = sorted((failing | set(delays_raw)) - set(SERVICE_NAMES))
    if unknown:
        raise ConfigError(f"Unknown service names in data file: {', '.join(unknown)}")
    delays = {str(k): int(v) for k, v in delays_raw.items()}

    try:
        orders = _index_orders(_rows(data, "orders"))
        offers = {o.id: o for o in (Offer.from_dict(r) for r in _rows(data, "offers"))}
        products = {p.id: p for p in (Product.from_dict(r) for r in _rows(data, "products"))}
    except ValueError as e:
        raise ConfigError(f"Invalid data record: {e}") from e

    LOG.debug(
        "Loaded fixture data",
        extra={"orders": len(orders), "offers": len(offers), "products": len(products)},
    )
    return ServiceBundle(
        order=InMemoryOrderService(orders, delay_ms=delays.get("order", 0), failing="order" in failing),
        offer=InMemoryOfferService(offers, delay_ms=delays.get("offer", 0), failing="offer" in failing),
        product=InMemoryProductService(products, delay_ms=delays.get("product", 0), failing="product" in failing),
    )


def load_fixture(path: Path, *, failing: Optional[Iterable[str]] = None) -> ServiceBundle:
    data = _parse_fixture_file(Path(path))
    if failing:
        data = dict(data)
        data["failing"] = list(data.get("failing") or []) + list(failing)
    return build_services(data)
