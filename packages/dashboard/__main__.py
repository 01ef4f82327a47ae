"""Entry point: python -m packages.dashboard"""

import argparse
import logging
import sys

from beadview.config import get_graph_config, get_logs_dir, get_source_config, load_config
from beadview.exceptions import BeadviewError
from beadview.fetcher import make_fetcher
from beadview.graph_types import NodeDensity

from .app import BeadviewDashboard


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Beadview bead graph dashboard")
    parser.add_argument("--epic", type=str,
                        help="Dim everything outside this epic's subtree")
    parser.add_argument("--density", choices=[d.value for d in NodeDensity],
                        help="Initial row density")
    parser.add_argument("--source", choices=["br", "jsonl", "demo"],
                        help="Where bead data comes from")
    parser.add_argument("--refresh", type=float,
                        help="Auto-refresh interval in seconds (0 disables)")
    parser.add_argument("--demo", action="store_true",
                        help="Run in demo mode with sample data")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    log_path = get_logs_dir() / "dashboard.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_path),
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("dashboard")

    try:
        config = load_config()
        graph_config = get_graph_config(config)
        source_config = get_source_config(config)
        if args.demo or args.source:
            source_config.type = "demo" if args.demo else args.source
        fetcher = make_fetcher(source_config)
    except BeadviewError as e:
        logger.error("Cannot start dashboard: %s", e)
        sys.exit(f"beadview: {e}")

    # Command-line flags win over config.yaml
    if args.epic:
        graph_config.epic = args.epic
    if args.density:
        graph_config.density = args.density
    if args.refresh is not None:
        graph_config.auto_refresh_interval = args.refresh

    try:
        app = BeadviewDashboard(graph_config, fetcher, layout=graph_config.layout)
        app.run()
    except Exception:
        logger.exception("Dashboard crashed")
        raise


if __name__ == "__main__":
    main()
