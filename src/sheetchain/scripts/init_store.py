"""Create the Balances, Transactions, Claims and Bridge tables with headers."""

from __future__ import annotations

import argparse
import logging
import sys

from sheetchain.core.errors import ConfigurationError, StoreUnavailable
from sheetchain.core.logging import configure_logging
from sheetchain.core.settings import settings
from sheetchain.db.session import create_tables
from sheetchain.store import TABLES, build_store, initialize_store

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--backend",
        choices=["sql", "google", "memory"],
        help="Override STORE_BACKEND for this run",
    )
    parser.add_argument(
        "--skip-db",
        action="store_true",
        help="Do not create the SQL tables (sheet_rows, bridge_events)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(settings.log_level)
    config = settings
    if args.backend:
        config = settings.model_copy(update={"store_backend": args.backend})

    try:
        if not args.skip_db:
            create_tables()
        store = build_store(config)
        try:
            initialize_store(store)
        finally:
            store.close()
    except (ConfigurationError, StoreUnavailable) as exc:
        logger.error("Store initialization failed: %s", exc)
        return 1

    print(f"Initialized {config.store_backend} store: {', '.join(TABLES)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
