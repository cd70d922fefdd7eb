"""Operator entry point for region store promotion and cache demotion."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass

import structlog

from templatestore.config import AppConfig, load_config
from templatestore.exceptions import ReferentialIntegrityError, RepositoryError
from templatestore.logging import configure_logging
from templatestore.repositories import (
    SQLAlchemyStoreTopology,
    SQLAlchemyTemplateCatalog,
    TemplateStoreRefRepository,
)

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_REPOSITORY_ERROR = 2
EXIT_MISSING_TEMPLATES = 3


@dataclass(slots=True)
class PromotionSummary:
    command: str
    store_id: int
    rows: int


def build_repository(config: AppConfig) -> TemplateStoreRefRepository:
    return TemplateStoreRefRepository(
        config.session_factory,
        topology=SQLAlchemyStoreTopology(config.session_factory),
        catalog=SQLAlchemyTemplateCatalog(config.session_factory),
    )


def run(command: str, store_id: int) -> PromotionSummary:
    config = load_config()
    configure_logging(config.settings.log_level, json=config.settings.log_json)
    repo = build_repository(config)
    log = logger.bind(command=command, store_id=store_id)

    if command == "promote":
        rows = repo.duplicate_cache_records_on_region_store(store_id)
    else:
        rows = repo.update_store_role_to_cache(store_id)
    log.info("region_store.command_done", rows=rows)
    return PromotionSummary(command=command, store_id=store_id, rows=rows)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage template records of image stores.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    promote = subparsers.add_parser(
        "promote", help="Duplicate cache records onto a new region-wide store."
    )
    promote.add_argument("--store-id", type=int, required=True)

    demote = subparsers.add_parser(
        "demote-to-cache", help="Relabel every record of a store as image cache."
    )
    demote.add_argument("--store-id", type=int, required=True)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        summary = run(args.command, args.store_id)
    except ReferentialIntegrityError as exc:
        logger.error("region_store.templates_missing", template_ids=list(exc.template_ids))
        print(f"{args.command} incomplete: {exc}", file=sys.stderr)
        return EXIT_MISSING_TEMPLATES
    except RepositoryError as exc:
        print(f"{args.command} failed: {exc}", file=sys.stderr)
        return EXIT_REPOSITORY_ERROR

    print(f"{summary.command} done, store_id={summary.store_id}, rows={summary.rows}", file=sys.stdout)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
