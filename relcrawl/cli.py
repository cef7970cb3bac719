"""Command-line interface: crawl a relation network described by a config file."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import load_configuration, storage_root_from_env
from .engine import Cancelled, CrawlResult, PartialFailure
from .graphml import save_graph
from .models import ValidationError
from .observability import CrawlObservability
from .runner import CrawlHandle, start
from .sources import HttpRelationSource


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_CONFIG = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_CANCELLED = 3

_POLL_SECONDS = 0.2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl a relation network into a directed graph")
    parser.add_argument("config", type=Path, help="Path to JSON network configuration file")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Override the output folder from the configuration file",
    )
    parser.add_argument(
        "--storage-root",
        type=Path,
        default=None,
        help="Directory for crawl telemetry (default: $RELCRAWL_STORAGE_ROOT or artifacts/crawls)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def wait_for_result(handle: CrawlHandle) -> CrawlResult:
    """Relay progress until the crawl ends; Ctrl-C requests cancellation."""

    while True:
        try:
            for message in handle.progress.drain():
                print(message, file=sys.stderr)
            try:
                return handle.result(timeout=_POLL_SECONDS)
            except TimeoutError:
                continue
        except KeyboardInterrupt:
            logger.warning("Interrupted; cancelling crawl %s", handle.crawl_id)
            handle.cancel()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        configuration = load_configuration(args.config)
    except ValidationError as exc:
        print("Invalid network configuration. See validation errors below:", file=sys.stderr)
        for field, message in exc.errors.items():
            print(f" - {field}: {message}", file=sys.stderr)
        return EXIT_INVALID_CONFIG

    output = configuration.output
    folder = args.output_dir or output.folder
    storage_root = args.storage_root or storage_root_from_env()

    source = HttpRelationSource.from_spec(configuration.spec, configuration.api)
    handle = start(
        configuration.spec,
        source,
        telemetry=CrawlObservability(storage_root),
        close_source=True,
    )
    result = wait_for_result(handle)

    summary: dict[str, object] = {"crawl_id": handle.crawl_id, "state": handle.state.value}
    if isinstance(result, Cancelled):
        print(json.dumps(summary, indent=2))
        return EXIT_CANCELLED

    summary["files"] = [str(path) for path in save_graph(result.graph, folder, output.formats, output.basename)]
    summary["vertex_count"] = len(result.graph.vertices)
    summary["edge_count"] = len(result.graph.edges)
    summary["stats"] = result.stats.to_dict()
    print(json.dumps(summary, indent=2))
    if isinstance(result, PartialFailure):
        print(f"Crawl stopped early: {result.cause}", file=sys.stderr)
        return EXIT_PARTIAL_FAILURE
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
