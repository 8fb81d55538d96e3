# ruff: noqa: T201

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from dotenv import load_dotenv

from taxometrics.app import (
    add_manual_mapping,
    deactivate_manual_mapping,
    get_integrated_metrics,
    get_integration_status,
    get_match_rate_summary,
    get_unmatched,
    load_catalog,
    run_sync,
)
from taxometrics.config import configure_logging
from taxometrics.domain.cancellation import CancellationToken
from taxometrics.domain.model import (
    CatalogNode,
    CatalogProduct,
    CatalogSnapshot,
    EntityType,
    IdentifierType,
    RunState,
    SyncMode,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from taxometrics.domain.integration import SyncSummary

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Attach external metrics to the catalog")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run one sync for a metrics date")
    sync.add_argument(
        "--date",
        type=str,
        help="Metrics date (YYYY-MM-DD); defaults to yesterday (UTC)",
    )
    sync.add_argument(
        "--mode",
        choices=[mode.value for mode in SyncMode],
        default=SyncMode.FULL.value,
        help="Reprocess everything or only records changed since the last success",
    )

    unmatched = subparsers.add_parser("unmatched", help="List unresolved identifiers")
    unmatched.add_argument(
        "--limit",
        type=int,
        help="Maximum number of rows (defaults to config)",
    )
    unmatched.add_argument(
        "--recent",
        action="store_true",
        help="Order by last attempt instead of attempt count",
    )

    match_rate = subparsers.add_parser("match-rate", help="Match rates per source")
    match_rate.add_argument("--date", type=str, required=True, help="Metrics date (YYYY-MM-DD)")

    metrics = subparsers.add_parser("metrics", help="Integrated metrics of one entity")
    metrics.add_argument(
        "--entity-type",
        choices=[entity_type.value for entity_type in EntityType],
        required=True,
    )
    metrics.add_argument("--entity-id", type=str, required=True)
    metrics.add_argument("--start", type=str, help="First metrics date (inclusive)")
    metrics.add_argument("--end", type=str, help="Last metrics date (inclusive)")

    status = subparsers.add_parser("status", help="Last run and top unmatched identifiers")
    status.add_argument("--top", type=int, default=10, help="Number of unmatched rows to show")

    mapping = subparsers.add_parser("mapping", help="Manual mapping administration")
    mapping_sub = mapping.add_subparsers(dest="mapping_command", required=True)
    mapping_add = mapping_sub.add_parser("add", help="Bind an identifier to a catalog entity")
    mapping_add.add_argument("--identifier", type=str, required=True)
    mapping_add.add_argument(
        "--entity-type",
        choices=[entity_type.value for entity_type in EntityType],
        required=True,
    )
    mapping_add.add_argument("--entity-id", type=str, required=True)
    mapping_add.add_argument("--created-by", type=str, required=True)
    mapping_add.add_argument(
        "--identifier-type",
        choices=[identifier_type.value for identifier_type in IdentifierType],
        help="Also match the normalized form of the identifier",
    )
    mapping_deactivate = mapping_sub.add_parser("deactivate", help="Deactivate a mapping")
    mapping_deactivate.add_argument("--id", type=str, required=True, dest="mapping_id")

    catalog = subparsers.add_parser("catalog", help="Catalog administration")
    catalog_sub = catalog.add_subparsers(dest="catalog_command", required=True)
    catalog_load = catalog_sub.add_parser("load", help="Replace the catalog from a JSON file")
    catalog_load.add_argument("path", type=Path)

    return parser.parse_args(list(argv))


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _default_metrics_date() -> date:
    return (_utcnow() - timedelta(days=1)).date()


def _read_catalog(path: Path) -> CatalogSnapshot:
    """Parse ``{"nodes": [...], "products": [...]}`` into a snapshot."""

    with path.open(encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"Catalog file must contain a JSON object: {path}")

    node_fields = {item.name for item in dataclasses.fields(CatalogNode)}
    product_fields = {item.name for item in dataclasses.fields(CatalogProduct)}
    try:
        nodes = tuple(
            CatalogNode(**{key: value for key, value in item.items() if key in node_fields})
            for item in payload.get("nodes", [])
        )
        products = tuple(
            CatalogProduct(**{key: value for key, value in item.items() if key in product_fields})
            for item in payload.get("products", [])
        )
    except TypeError as exc:
        raise ValueError(f"Malformed catalog entry in {path}: {exc}") from exc
    return CatalogSnapshot(nodes=nodes, products=products)


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            item.name: _jsonable(getattr(value, item.name)) for item in dataclasses.fields(value)
        }
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def _emit(value: Any) -> None:
    print(json.dumps(_jsonable(value), indent=2, sort_keys=True))


def _summary_payload(summary: SyncSummary) -> dict[str, Any]:
    payload: dict[str, Any] = _jsonable(summary)
    payload["matched"] = summary.matched
    payload["unmatched"] = summary.unmatched
    payload["match_rate"] = summary.match_rate
    payload["error_counts"] = _jsonable(summary.error_counts())
    return payload


def _run_command(parsed_args: argparse.Namespace) -> int:
    command = parsed_args.command
    if command == "sync":
        metrics_date = (
            _parse_date(parsed_args.date) if parsed_args.date else _default_metrics_date()
        )
        cancel = CancellationToken()
        previous = signal(SIGINT, lambda _signum, _frame: cancel.cancel("interrupted by user"))
        try:
            summary = run_sync(metrics_date, SyncMode(parsed_args.mode), cancel=cancel)
        finally:
            signal(SIGINT, previous)
        _emit(_summary_payload(summary))
        return 0 if summary.state is RunState.COMPLETED else 1
    if command == "unmatched":
        _emit(get_unmatched(limit=parsed_args.limit, sort_by_attempts=not parsed_args.recent))
        return 0
    if command == "match-rate":
        summary = get_match_rate_summary(_parse_date(parsed_args.date))
        _emit(
            {
                "metrics_date": summary.metrics_date,
                "per_source": {
                    source: {
                        "matched": rate.matched,
                        "unmatched": rate.unmatched,
                        "match_rate": rate.match_rate,
                        "avg_confidence": rate.avg_confidence,
                    }
                    for source, rate in summary.per_source.items()
                },
            }
        )
        return 0
    if command == "metrics":
        _emit(
            get_integrated_metrics(
                EntityType(parsed_args.entity_type),
                parsed_args.entity_id,
                start=_parse_date(parsed_args.start) if parsed_args.start else None,
                end=_parse_date(parsed_args.end) if parsed_args.end else None,
            )
        )
        return 0
    if command == "status":
        _emit(get_integration_status(top=parsed_args.top))
        return 0
    if command == "mapping" and parsed_args.mapping_command == "add":
        mapping = add_manual_mapping(
            source_identifier=parsed_args.identifier,
            entity_type=EntityType(parsed_args.entity_type),
            entity_id=parsed_args.entity_id,
            created_by=parsed_args.created_by,
            identifier_type=(
                IdentifierType(parsed_args.identifier_type)
                if parsed_args.identifier_type
                else None
            ),
        )
        log.info("Created manual mapping %s", mapping.id)
        _emit(mapping)
        return 0
    if command == "mapping" and parsed_args.mapping_command == "deactivate":
        mapping = deactivate_manual_mapping(_parse_uuid(parsed_args.mapping_id))
        _emit(mapping)
        return 0
    if command == "catalog" and parsed_args.catalog_command == "load":
        load_catalog(_read_catalog(parsed_args.path))
        return 0
    raise ValueError(f"Unsupported command: {command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        if getattr(parsed_args, "date", None):
            _parse_date(parsed_args.date)
        if getattr(parsed_args, "mapping_id", None):
            _parse_uuid(parsed_args.mapping_id)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        exit_code = _run_command(parsed_args)
    except ValueError:
        log.exception("Invalid input")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    signal(SIGINT, sigint_handler)
    main()
