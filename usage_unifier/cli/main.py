"""
CLI interface for Usage Unifier.

Provides command-line access to bundle generation and inspection.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from usage_unifier.config.loader import parse_cost_mode, resolve_run_config
from usage_unifier.core.aggregate import (
    aggregate_profile_summary,
    aggregate_tool_summary,
    overall_totals,
)
from usage_unifier.core.engine import parse_usage_file
from usage_unifier.core.options import ParseOptions
from usage_unifier.core.pricing import PricingUnavailableError, load_pricing_catalog
from usage_unifier.core.profilex import ProfileResolver
from usage_unifier.core.sessions import mark_shared_sessions
from usage_unifier.sources.discovery import (
    collect_jsonl_files,
    existing_roots,
    find_profilex_state,
    to_posix_absolute,
    usage_roots,
)
from usage_unifier.storage.bundle import SourceSummary, build_bundle, read_bundle, write_bundle
from usage_unifier.storage.models import Tool, UsageEvent

app = typer.Typer()
console = Console()
logger = logging.getLogger(__name__)

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1

PROGRESS_EVERY = 100


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Usage Unifier CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print("Usage Unifier - Use --help to see available commands")


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${amount:,.2f}"


def _format_tokens(count: int) -> str:
    return f"{count:,}"


def _collect_files(roots: List[str], deep: bool, max_files: int, notes: List[str]) -> List[str]:
    files: List[str] = []
    for root in roots:
        for path in collect_jsonl_files(root, only_likely_paths=False, max_files=max_files - len(files)):
            if path not in files:
                files.append(path)
        if len(files) >= max_files:
            break

    if deep and len(files) < max_files:
        deep_files = collect_jsonl_files(
            str(Path.home()), only_likely_paths=True, max_files=max_files - len(files)
        )
        added = [path for path in deep_files if path not in files]
        files.extend(added)
        notes.append(f"Deep scan added {len(added)} candidate file(s) from home directory")

    return sorted(files)


def _load_pricing(url: str, timeout: float, offline: bool, notes: List[str]):
    if offline:
        notes.append("Pricing catalog skipped (offline)")
        return None
    try:
        catalog = load_pricing_catalog(url, timeout)
    except PricingUnavailableError as e:
        logger.warning("Pricing catalog unavailable: %s", e)
        notes.append(f"Pricing catalog unavailable: {e}")
        return None
    notes.append(f"Loaded pricing catalog ({len(catalog)} rows)")
    return catalog


@app.command()
def generate(
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output bundle path"),
    deep: Optional[bool] = typer.Option(None, "--deep/--no-deep", help="Also scan the home directory"),
    max_files: Optional[int] = typer.Option(None, "--max-files", help="Maximum number of files to parse"),
    cost_mode: Optional[str] = typer.Option(None, "--cost-mode", "-c", help="auto, calculate or display"),
    timezone: Optional[str] = typer.Option(None, "--timezone", "-t", help="IANA time zone for local dates"),
    config: Optional[str] = typer.Option(None, "--config", help="YAML run configuration"),
    offline: bool = typer.Option(False, "--offline", help="Do not fetch the pricing catalog"),
):
    """
    Generate the unified usage bundle from local CLI logs.

    Files are parsed sequentially with one shared profile resolver. A file
    that fails to read or parse is recorded in the bundle notes and the run
    continues.
    """
    try:
        run_config = resolve_run_config(
            config,
            out=out,
            deep=deep,
            max_files=max_files,
            timezone=timezone,
            cost_mode=parse_cost_mode(cost_mode) if cost_mode is not None else None,
        )
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("Generating unified local dataset...")
    notes: List[str] = []

    state, state_path = find_profilex_state(notes)
    roots = existing_roots(usage_roots(state))
    if not roots:
        notes.append("No usage roots found in default locations")

    files = _collect_files(roots, run_config.deep, run_config.max_files, notes)
    catalog = _load_pricing(run_config.pricing_url, run_config.pricing_timeout, offline, notes)

    options = ParseOptions(
        timezone=run_config.timezone,
        cost_mode=run_config.cost_mode,
        pricing_catalog=catalog,
        profile_resolver=ProfileResolver(state),
    )

    events: List[UsageEvent] = []
    zero_event_files = 0
    parse_failures = 0
    for index, path in enumerate(files, start=1):
        try:
            with open(path, 'r', encoding='utf-8', errors='replace') as f:
                parsed = parse_usage_file(f.read(), path, options)
        except Exception as e:
            parse_failures += 1
            logger.warning("Failed to parse %s: %s", path, e)
            notes.append(f"Failed to parse {path}: {e}")
            continue

        if parsed:
            events.extend(parsed)
        else:
            zero_event_files += 1
        if index % PROGRESS_EVERY == 0:
            console.print(f"Parsed {index}/{len(files)} usage file(s)...")

    notes.append(f"Files with zero parsed events: {zero_event_files}")
    notes.append(f"Files with read/parse failures: {parse_failures}")

    bundle = build_bundle(
        events=mark_shared_sessions(events),
        timezone_name=run_config.timezone,
        cost_mode=run_config.cost_mode,
        pricing_loaded=catalog is not None,
        profilex_state=state.to_dict() if state is not None else None,
        source=SourceSummary(profilex_state_path=state_path, usage_roots=roots, usage_files=files),
        notes=notes,
    )
    out_path = write_bundle(bundle, run_config.out)

    console.print(f"[green]✓[/] Wrote {len(bundle.events)} event(s) from {len(files)} file(s)")
    console.print(f"Output: {to_posix_absolute(str(out_path))}")
    sys.exit(EXIT_CODE_OK)


@app.command()
def parse(
    file: str = typer.Argument(..., help="Log file to normalize"),
    tool: str = typer.Option("auto", "--tool", help="auto, claude or codex"),
    cost_mode: str = typer.Option("auto", "--cost-mode", "-c", help="auto, calculate or display"),
    timezone: str = typer.Option("UTC", "--timezone", "-t", help="IANA time zone for local dates"),
    pricing: Optional[str] = typer.Option(None, "--pricing", help="Local pricing catalog JSON file"),
):
    """Normalize a single log file and print its events."""
    try:
        mode = parse_cost_mode(cost_mode)
        tool_hint = None if tool == "auto" else Tool(tool)
        catalog = None
        if pricing:
            with open(pricing, 'r', encoding='utf-8') as f:
                catalog = json.load(f)
        with open(file, 'r', encoding='utf-8', errors='replace') as f:
            text = f.read()
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    options = ParseOptions(timezone=timezone, cost_mode=mode, tool_hint=tool_hint, pricing_catalog=catalog)
    events = parse_usage_file(text, to_posix_absolute(file), options)

    if not events:
        console.print("\n[bold yellow]No usage events found[/]\n")
        sys.exit(EXIT_CODE_OK)

    table = Table(title=f"{len(events)} event(s)")
    table.add_column("Timestamp (UTC)")
    table.add_column("Tool")
    table.add_column("Model")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    for e in events:
        model = f"{e.model} (fallback)" if e.is_fallback_model else e.model
        table.add_row(
            e.timestamp_utc,
            e.tool.value,
            model,
            _format_tokens(e.normalized_total_tokens),
            _format_currency(e.effective_cost_usd),
        )
    console.print(table)
    sys.exit(EXIT_CODE_OK)


@app.command()
def summary(bundle_path: str = typer.Argument(..., help="Bundle written by generate")):
    """Show tool and profile totals from a bundle."""
    try:
        bundle = read_bundle(bundle_path)
    except (FileNotFoundError, ValueError, KeyError, TypeError) as e:
        console.print(f"[red]Error reading bundle:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    totals = overall_totals(bundle.events)
    console.print("\n[bold]Unified Usage Summary[/bold]")
    console.print("-" * 40)
    console.print(f"Events: {_format_tokens(len(bundle.events))}")
    console.print(f"Total tokens: {_format_tokens(totals.total_tokens)}")
    console.print(f"Total cost: {_format_currency(totals.total_cost_usd)}")
    if totals.window_start:
        console.print(f"Window: {totals.window_start} - {totals.window_end}")

    tools = Table(title="By tool")
    tools.add_column("Tool")
    tools.add_column("Tokens", justify="right")
    tools.add_column("Observed", justify="right")
    tools.add_column("Calculated", justify="right")
    tools.add_column("Effective", justify="right")
    tools.add_column("Profiles", justify="right")
    for row in aggregate_tool_summary(bundle.events):
        tools.add_row(
            row.tool.value,
            _format_tokens(row.total_tokens),
            _format_currency(row.observed_cost_usd),
            _format_currency(row.calculated_cost_usd),
            _format_currency(row.total_cost_usd),
            str(row.active_profiles),
        )
    console.print(tools)

    profiles = Table(title="By profile")
    profiles.add_column("Profile")
    profiles.add_column("Tokens", justify="right")
    profiles.add_column("Cost", justify="right")
    profiles.add_column("Avg/day", justify="right")
    profiles.add_column("Top models")
    for row in aggregate_profile_summary(bundle.events):
        profiles.add_row(
            row.profile_id,
            _format_tokens(row.total_tokens),
            _format_currency(row.total_cost),
            _format_currency(row.avg_daily_cost),
            ", ".join(row.top_models),
        )
    console.print(profiles)

    for note in bundle.notes:
        console.print(f"[dim]{note}[/]")
    sys.exit(EXIT_CODE_OK)


if __name__ == "__main__":
    app()
