"""CLI entrypoint for roster ingestion runs."""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path

from broadcast.errors import FeedError
from broadcast.ingestion.sync import RosterSyncEngine
from broadcast.settings import load_config
from broadcast.store import create_store


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ingest a roster feed snapshot (JSON list of sheet rows).",
    )
    parser.add_argument(
        "feed",
        type=Path,
        help="Path to the JSON feed snapshot.",
    )
    parser.add_argument(
        "--sheet",
        type=str,
        help="Sheet name recorded as row provenance (default: ROSTER_SHEET_NAME).",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        help="SQLAlchemy URL (default: DATABASE_URL).",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Re-read and ingest the file every ROSTER_POLL_SECONDS until interrupted.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        help="Override the poll interval in seconds.",
    )
    return parser.parse_args()


def load_feed_file(path: Path) -> object:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise FeedError(f"Cannot read feed file {path}: {exc}") from exc


def _run_once(engine: RosterSyncEngine, path: Path, sheet: str) -> None:
    try:
        rows = load_feed_file(path)
    except FeedError as exc:
        engine.record_failure(sheet, str(exc))
        raise
    result = engine.ingest(rows, sheet_name=sheet)
    logging.info(
        "Done: total=%s inserted=%s updated=%s unchanged=%s deactivated=%s skipped=%s errors=%s",
        result.total,
        result.inserted,
        result.updated,
        result.unchanged,
        result.deactivated,
        result.skipped,
        result.errors,
    )


def main() -> None:
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    args = _parse_args()
    sheet = args.sheet or config.roster_sheet_name
    store = create_store(args.database_url or config.database_url)
    engine = RosterSyncEngine(store, sheet_name=sheet)

    logging.info("Starting roster ingestion file=%s sheet=%s", args.feed, sheet)
    try:
        if not args.watch:
            try:
                _run_once(engine, args.feed, sheet)
            except FeedError as exc:
                raise SystemExit(f"Roster ingestion failed: {exc}") from exc
            return

        interval = args.interval or config.roster_poll_seconds
        while True:
            try:
                _run_once(engine, args.feed, sheet)
            except FeedError:
                logging.exception("Roster ingestion failed; retrying in %ss", interval)
            time.sleep(interval)
    except KeyboardInterrupt:
        logging.info("Roster ingestion stopped.")
    finally:
        store.dispose()


if __name__ == "__main__":
    main()
