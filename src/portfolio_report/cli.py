"""
Portfolio Report CLI

Usage:
    portfolio-report generate payload.json [-o DIR] [--flat] [--no-enhance] [--no-images]
    portfolio-report status

Exit Codes:
    0   OK
    1   RENDER_FAILED    - the PDF could not be produced
    2   INPUT_INVALID    - payload missing required fields or unreadable
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from enum import IntEnum
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from portfolio_report import __version__
from portfolio_report.composer import ComposeOptions
from portfolio_report.config import get_settings
from portfolio_report.errors import PortfolioError, PortfolioValidationError, RenderFailure
from portfolio_report.pipeline import generate_portfolio
from portfolio_report.storage import LocalStore

console = Console()
logger = logging.getLogger("portfolio_report")


class ExitCode(IntEnum):
    OK            = 0
    RENDER_FAILED = 1
    INPUT_INVALID = 2


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _trace_table(result) -> Table:
    table = Table(title=f"Run {result.model.trace.run_id} · mode {result.model.trace.mode}")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("ms", justify="right")
    table.add_column("Output")
    colour = {"success": "green", "degraded": "yellow", "skipped": "dim"}
    for step in result.model.trace.steps:
        table.add_row(
            f"{step.stage_id} {step.stage_name}",
            f"[{colour.get(step.status, 'white')}]{step.status}[/]",
            f"{step.duration_ms:.1f}",
            step.output_summary,
        )
    return table


def cmd_generate(args: argparse.Namespace) -> int:
    try:
        payload = json.loads(Path(args.payload).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Cannot read payload {args.payload}: {exc}[/red]")
        return ExitCode.INPUT_INVALID

    settings = get_settings()
    options = ComposeOptions(
        listing         = "flat" if args.flat else "grouped",
        use_enhancement = not args.no_enhance,
        include_images  = not args.no_images,
    )
    store = LocalStore(args.output or settings.app.output_dir)

    try:
        with console.status("[bold blue]Generating portfolio…"):
            result = generate_portfolio(payload, settings=settings, options=options, store=store)
    except PortfolioValidationError as exc:
        console.print(Panel(str(exc), title="Validation failed", border_style="red", expand=False))
        return ExitCode.INPUT_INVALID
    except RenderFailure as exc:
        console.print(Panel(f"{exc}\nnodes: {exc.node_count}", title="Render failed",
                            border_style="red", expand=False))
        return ExitCode.RENDER_FAILED
    except PortfolioError as exc:
        console.print(Panel(str(exc), title="Report failed", border_style="red", expand=False))
        return ExitCode.RENDER_FAILED

    console.print(_trace_table(result))
    for warning in result.model.trace.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")
    console.print(Panel(
        f"[bold]{result.filename}[/bold]\n{result.url}\n"
        f"{result.model.unique_activity_count} unique activities · {len(result.pdf):,} bytes",
        title="Portfolio generated", border_style="green", expand=False,
    ))
    return ExitCode.OK


def cmd_status(args: argparse.Namespace) -> int:
    settings = get_settings()
    table = Table(title="Collaborator status")
    table.add_column("Collaborator")
    table.add_column("Status")
    for name, status in settings.status_summary().items():
        table.add_row(name, status)
    console.print(table)
    return ExitCode.OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="portfolio-report",
        description="Home education learning portfolio generator",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    gen_parser = subparsers.add_parser("generate", help="Generate a portfolio PDF from a JSON payload")
    gen_parser.add_argument("payload", help="Payload JSON file")
    gen_parser.add_argument("--output", "-o", help="Output directory (default: PORTFOLIO_OUTPUT_DIR)")
    gen_parser.add_argument("--flat", action="store_true", help="List evidence chronologically instead of by area")
    gen_parser.add_argument("--no-enhance", action="store_true", help="Ignore enhancement overlays and skip Azure OpenAI")
    gen_parser.add_argument("--no-images", action="store_true", help="Do not fetch or embed evidence images")
    gen_parser.set_defaults(func=cmd_generate)

    status_parser = subparsers.add_parser("status", help="Show collaborator configuration")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)
    _configure_logging(args.log_level or get_settings().app.log_level)

    if not args.command:
        parser.print_help()
        return ExitCode.INPUT_INVALID
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
