from __future__ import annotations

import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .aggregator import AggregatorService
from .config import AggregatorConfig, dump_config, load_run_config
from .logging import LogConfig, get_logger, log_event, setup_logging
from .lookups.http import build_http_services
from .lookups.memory import ServiceBundle, load_fixture
from .models import EnrichedOrder
from .util.concurrency import parallel_map_ordered
from .util.errors import ConfigError, ExitCode, FatalLookupError, as_exit_code
from .util.rich_progress import (
    EnrichProgress,
    render_enriched_table,
    render_failures_table,
    render_run_summary_table,
)
from .util.serialization import dumps_json_array, iter_jsonl

LOG = get_logger(__name__)


@dataclass(frozen=True)
class SellerResult:
    seller_id: int
    order: Optional[EnrichedOrder] = None
    error: Optional[str] = None


def build_services(cfg: AggregatorConfig) -> ServiceBundle:
    if cfg.data and cfg.base_url:
        raise ConfigError("Use either --data or --base-url, not both")
    if cfg.data:
        return load_fixture(cfg.data, failing=cfg.fail)
    if cfg.base_url:
        if cfg.fail:
            raise ConfigError("--fail only applies to fixture data (--data)")
        pool_size = cfg.pool_size or cfg.dependent_pool_size + cfg.workers
        return build_http_services(cfg.base_url, timeout=cfg.http_timeout, pool_size=pool_size)
    raise ConfigError("A lookup backend is required: pass --data or --base-url")


def run_enrichment(
    aggregator: AggregatorService,
    seller_ids: Sequence[int],
    *,
    workers: int,
    progress: Optional[EnrichProgress] = None,
) -> List[SellerResult]:
    """
    Enrich every seller's order, at most `workers` at a time. An order
    lookup failure is recorded against its seller and does not stop the rest.
    """

    def _one(seller_id: int) -> SellerResult:
        try:
            result = SellerResult(seller_id=seller_id, order=aggregator.enrich(seller_id))
        except FatalLookupError as e:
            result = SellerResult(seller_id=seller_id, error=str(e))
        if progress is not None:
            progress.advance(failed=result.error is not None)
        return result

    if not seller_ids:
        return []
    return parallel_map_ordered(_one, seller_ids, max_workers=max(1, min(workers, len(seller_ids))))


def summarize(results: Sequence[SellerResult], started_at: str) -> Dict[str, Any]:
    enriched = [r.order for r in results if r.order is not None]
    return {
        "requested": len(results),
        "enriched": len(enriched),
        "offer_missing": sum(1 for o in enriched if not o.has_offer),
        "product_missing": sum(1 for o in enriched if not o.has_product),
        "failed": sum(1 for r in results if r.error is not None),
        "started_at": started_at,
    }


def _write_output(cfg: AggregatorConfig, results: Sequence[SellerResult], metrics: Dict[str, Any]) -> None:
    orders = [r.order for r in results if r.order is not None]
    if cfg.output_format == "json":
        print(dumps_json_array(orders))
    elif cfg.output_format == "jsonl":
        for line in iter_jsonl(orders):
            print(line)
    else:
        render_enriched_table(orders)
        render_failures_table({r.seller_id: r.error for r in results if r.error is not None})
        render_run_summary_table(enabled=True, metrics=metrics)


def cmd_enrich(cfg: AggregatorConfig) -> int:
    if not cfg.seller_ids:
        raise ConfigError("enrich requires at least one seller id")
    started_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    services = build_services(cfg)
    log_event(LOG, logging.INFO, f"Enriching {len(cfg.seller_ids)} seller(s)", step="run", phase="start",
              sellers=len(cfg.seller_ids), workers=cfg.workers)

    # One shared pool for the dependent lookups of all in-flight requests.
    with ThreadPoolExecutor(max_workers=cfg.dependent_pool_size, thread_name_prefix="lookup") as pool:
        aggregator = AggregatorService(services.order, services.offer, services.product, executor=pool)
        with EnrichProgress(enabled=cfg.progress, total=len(cfg.seller_ids)) as progress:
            results = run_enrichment(aggregator, cfg.seller_ids, workers=cfg.workers, progress=progress)

    metrics = summarize(results, started_at)
    log_event(LOG, logging.INFO, "Enrichment finished", step="run", phase="complete",
              **{k: v for k, v in metrics.items() if k != "started_at"})
    _write_output(cfg, results, metrics)
    return int(ExitCode.ORDER_ERROR) if metrics["failed"] else int(ExitCode.OK)


def cmd_show_config(cfg: AggregatorConfig) -> int:
    print(json.dumps(dump_config(cfg), indent=2, sort_keys=True))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "enrich":
            code = cmd_enrich(cfg)
        elif command == "show-config":
            code = cmd_show_config(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        # Map to consistent exit code and log
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
