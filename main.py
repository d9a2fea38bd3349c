"""
Alva Dashboard Builder — Main CLI Entrypoint.

Creates investment dashboards via the Alva API, fetches their data and renders
a self-contained HTML document.

Usage:
  python main.py "Build an NVDA dashboard with price, RSI, revenue, PE"
  python main.py --session <id>             # Re-fetch & re-render an existing dashboard
  python main.py --session <id> --refresh   # Refresh data only (no new chat)
"""

import argparse
import asyncio
import logging
import os
import sys
import tempfile
from pathlib import Path

import httpx
from rich.console import Console

from alva.client import AlvaClient, AlvaError
from alva.progress import WidgetTask, format_widget_tasks
from dashboard.assembler import render_dashboard
from dashboard.uris import collect_dashboard_uris, short_label
from entry.credentials import CredentialsError, load_credentials
from execution.fetch_pool import DATA, TYPEDOC, FetchOutcome, fetch_series_bundle
from observability.logger import Observability
from shared.models import Credentials
from shared.settings import AlvaSettings, load_settings

# ─── Configuration ──────────────────────────────────────────────

logger = logging.getLogger(__name__)

LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING").strip().upper()
DEFAULT_TIMEOUT_SECONDS = 600

USAGE = (
    'Usage: python main.py "Build a dashboard..."\n'
    "       python main.py --session <id> [--refresh] [--output <path>]"
)

# ─── Rich Console ───────────────────────────────────────────────

console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging (stderr)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Alva Dashboard Builder")
    parser.add_argument("message", nargs="*", help="Dashboard request text")
    parser.add_argument("--session", dest="session_id", default=None, help="Reuse an existing dashboard session")
    parser.add_argument("--refresh", action="store_true", help="Re-fetch data without creating a new session")
    parser.add_argument("--output", default=None, help="Output HTML path")
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"Dashboard creation timeout in seconds (default: {DEFAULT_TIMEOUT_SECONDS})",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def default_output_path(session_id: str) -> Path:
    return Path(tempfile.gettempdir()) / f"alva-dashboard-{session_id}.html"


def _print_widget_tasks(tasks: list[WidgetTask]) -> None:
    console.print(f"📋 Widgets:\n{format_widget_tasks(tasks)}", markup=False, highlight=False)


def _print_outcome(outcome: FetchOutcome) -> None:
    label = short_label(outcome.uri)
    if not outcome.ok:
        console.print(f"  ❌ {label} {outcome.kind}: {outcome.error}", markup=False, highlight=False)
    elif outcome.kind == DATA:
        size = len(outcome.value) if isinstance(outcome.value, (list, dict)) else "?"
        console.print(f"  ✅ {label} ({size} pts)", markup=False, highlight=False)
    elif outcome.kind == TYPEDOC and outcome.value:
        console.print(f"  📄 {label} typedoc OK", markup=False, highlight=False)


async def build_dashboard(
    args: argparse.Namespace,
    settings: AlvaSettings,
    credentials: Credentials,
    client: AlvaClient | None = None,
) -> tuple[str, Path]:
    """Run the whole pipeline; returns (session_id, output path)."""
    obs = Observability(args.session_id)
    owned = client is None
    client = client or AlvaClient(settings, credentials.token)
    try:
        session_id = args.session_id
        if not session_id:
            console.print("⏳ Creating dashboard via Alva...")
            session = await client.create_dashboard(
                " ".join(args.message),
                timeout=float(args.timeout),
                on_progress=_print_widget_tasks,
            )
            session_id = session.session_id
            obs.bind_session(session_id)
            console.print(f"✅ Dashboard created: {session.session_name} ({session_id})", markup=False)

        console.print("📋 Fetching dashboard config...")
        with obs.measure("get_dashboard_config"):
            config = await client.get_dashboard_config(session_id)
        console.print(f"📊 Dashboard: {config.name} ({len(config.widgets)} widgets)", markup=False)

        uris = collect_dashboard_uris(config.widgets)
        console.print(f"📡 Fetching {len(uris)} time series + typedocs...")
        bundle = await fetch_series_bundle(
            client,
            uris,
            batch_size=settings.fetch_batch_size,
            observability=obs,
            on_outcome=_print_outcome,
        )
    finally:
        if owned:
            await client.aclose()

    with obs.measure("render_dashboard", {"widgets": len(config.widgets)}):
        document = render_dashboard(config, bundle, settings)

    output_path = Path(args.output) if args.output else default_output_path(session_id)
    output_path.write_text(document, encoding="utf-8")
    return session_id, output_path


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not args.session_id and not args.message:
        print(USAGE, file=sys.stderr)
        return 1
    if args.refresh and not args.session_id:
        print("--refresh requires --session <id>", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 1

    try:
        settings = load_settings(create_timeout_seconds=float(args.timeout))
        credentials = load_credentials(settings.credential_paths)
        session_id, output_path = asyncio.run(build_dashboard(args, settings, credentials))
    except CredentialsError as e:
        console.print(f"❌ {e}", markup=False)
        return 1
    except (AlvaError, httpx.HTTPError, OSError, ValueError) as e:
        logger.debug("Dashboard build failed", exc_info=True)
        console.print(f"❌ {e}", markup=False)
        return 1

    print(f"MEDIA:{output_path}")
    console.print("---")
    console.print(f"session_id: {session_id}", markup=False)
    console.print(f"output: {output_path}", markup=False)
    console.print(f"→ refresh: python main.py --session {session_id} --refresh", markup=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
