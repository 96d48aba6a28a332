"""
Command-line runner for the transcript reprocessing job.

Re-analyzes every completed submission from its stored transcript and
prints a summary table.
"""

import argparse
import logging
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from infosight.config import get_config
from infosight.logging_setup import configure_logging
from infosight.api.dependencies import get_reprocessor

console = Console()
logger = logging.getLogger("reprocess")


def _setup_logging(json_logs: bool) -> None:
    config = get_config()
    if json_logs or config.log_format == "json":
        configure_logging(config)
        return
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Re-run insight extraction over stored transcripts")
    parser.add_argument(
        "--delay", type=float, default=None,
        help="Seconds to pause between analysis calls (overrides REPROCESS_DELAY_SEC)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    args = parser.parse_args(argv)

    load_dotenv()
    _setup_logging(args.json_logs)

    config = get_config()
    if not config.openai_api_key:
        logger.error("OPENAI_API_KEY is not set")
        return 1
    if args.delay is not None:
        config.reprocess_delay_sec = args.delay

    reprocessor = get_reprocessor()
    try:
        summary = reprocessor.run()
    except KeyboardInterrupt:
        logger.warning("Reprocessing interrupted")
        return 130

    table = Table(title="Transcript reprocessing")
    table.add_column("Processed", justify="right")
    table.add_column("Updated", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_row(str(summary.processed), str(summary.updated), str(summary.skipped), str(summary.failed))
    console.print(table)

    for submission_id in summary.updated_ids:
        console.print(f"  [green]updated[/green] {submission_id}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
