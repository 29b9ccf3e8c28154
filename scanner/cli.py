"""CLI entry point for the wallet scanner analytics.

Commands:
  scanner accounts RESPONSE   — Totals and per-account table of a wallet query
  scanner report RUNTIME BASE — Risk & performance report of a snapshot pair
  scanner network NODES       — Network health of node telemetry

Every command reads JSON files and accepts ``--json`` to print the raw
report instead of tables.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from scanner.config import ScannerConfig, load_config
from scanner.engine.account_filter import ACTIVITY_FILTERS, CONNECTION_FILTERS, SORT_FIELDS
from scanner.observability.logger import configure_logging, get_logger

load_dotenv()

console = Console()
log = get_logger(__name__)

_LEVEL_COLORS = {
    "CRITICAL": "red", "HIGH": "red", "WARNING": "yellow", "STABLE": "yellow",
    "MEDIUM": "yellow", "GOOD": "cyan", "LOW": "green", "OPTIMAL": "green",
    "EXCELLENT": "green",
}


def _read_json(path: str | None) -> Any:
    if path is None:
        return None
    return json.loads(Path(path).read_text())


def _level(label: str) -> str:
    color = _LEVEL_COLORS.get(label, "white")
    return f"[{color}]{label}[/{color}]"


def _signed(value: float, suffix: str = "") -> str:
    color = "green" if value >= 0 else "red"
    return f"[{color}]{value:+,.2f}{suffix}[/{color}]"


def _load_accounts(path: str) -> list[Any]:
    from scanner.engine.scan import WalletNotFoundError, parse_wallet_response

    try:
        return parse_wallet_response(_read_json(path))
    except WalletNotFoundError as e:
        console.print(f"[red]Wallet not found: {e}[/red]")
        sys.exit(1)


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config.yaml")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """Wallet scanner: portfolio risk & performance analytics."""
    ctx.ensure_object(dict)
    cfg = load_config(config_path)
    ctx.obj["config"] = cfg
    configure_logging(
        level=cfg.observability.log_level,
        fmt="console",  # file output uses log_format
        log_file=cfg.observability.log_file or None,
        file_fmt=cfg.observability.log_format,
        force=True,
    )


# ─── ACCOUNTS ────────────────────────────────────────────────────────

@cli.command()
@click.argument("response_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--connection", type=click.Choice(CONNECTION_FILTERS), default="all")
@click.option("--activity", type=click.Choice(ACTIVITY_FILTERS), default="all")
@click.option("--search", default="", help="Substring of address, exchange, node id or note")
@click.option("--sort", "sort_field", type=click.Choice(SORT_FIELDS), default="equity")
@click.option("--asc", is_flag=True, help="Sort ascending")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables")
def accounts(
    response_path: str,
    connection: str,
    activity: str,
    search: str,
    sort_field: str,
    asc: bool,
    as_json: bool,
) -> None:
    """Summarise the accounts of a wallet query response."""
    from scanner.analytics.portfolio import rollup_accounts
    from scanner.engine.account_filter import filter_accounts, sort_accounts

    all_accounts = _load_accounts(response_path)
    totals = rollup_accounts(all_accounts)
    shown = sort_accounts(
        filter_accounts(all_accounts, connection=connection, activity=activity, search=search),
        field=sort_field,
        descending=not asc,
    )

    if as_json:
        console.print_json(json.dumps({
            "totals": totals.to_dict(),
            "accounts": [
                {
                    "address": a.address,
                    "exchange": a.exchange,
                    "connection": a.connection,
                    "equity": a.wallet.total_equity,
                    "perp_upl": a.wallet.total_perp_upl,
                    "positions": a.position_count,
                    "open_orders": a.open_order_count,
                    "unparsed_fields": a.wallet.unparsed_fields,
                }
                for a in shown
            ],
        }))
        return

    summary = Table(title=f"📊 Wallet Totals ({totals.accounts_count} accounts)")
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")
    summary.add_row("Total Equity", f"${totals.total_equity:,.2f}")
    summary.add_row("Wallet Balance", f"${totals.total_wallet_balance:,.2f}")
    summary.add_row("Available Balance", f"${totals.total_available_balance:,.2f}")
    summary.add_row("Perp Unrealised P&L", _signed(totals.total_perp_upl))
    summary.add_row("Positions", str(totals.total_positions))
    summary.add_row("Open Orders", str(totals.total_open_orders))
    console.print(summary)

    table = Table(title=f"Accounts ({len(shown)} shown)")
    table.add_column("Address", style="dim", max_width=14)
    table.add_column("Exchange", style="cyan")
    table.add_column("Conn")
    table.add_column("Equity", justify="right", style="green")
    table.add_column("Perp UPL", justify="right")
    table.add_column("Pos", justify="right")
    table.add_column("Orders", justify="right")
    for a in shown:
        equity = f"${a.wallet.total_equity:,.2f}"
        if "total_equity" in a.wallet.unparsed_fields:
            equity = "[dim]n/a[/dim]"
        table.add_row(
            a.address[:14],
            a.exchange,
            "✅" if a.connection else "❌",
            equity,
            _signed(a.wallet.total_perp_upl),
            str(a.position_count),
            str(a.open_order_count),
        )
    console.print(table)


# ─── REPORT ──────────────────────────────────────────────────────────

@cli.command()
@click.argument("runtime_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("baseline_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--nodes", "nodes_path", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--accounts", "accounts_path", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--prices", "prices_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON map of coin → last price")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables")
@click.pass_context
def report(
    ctx: click.Context,
    runtime_path: str,
    baseline_path: str,
    nodes_path: str | None,
    accounts_path: str | None,
    prices_path: str | None,
    as_json: bool,
) -> None:
    """Risk & performance report of a runtime snapshot against its baseline."""
    cfg: ScannerConfig = ctx.obj["config"]

    from scanner.engine.scan import build_scan_report
    from scanner.models import RuntimeSnapshot

    result = build_scan_report(
        runtime=RuntimeSnapshot.from_payload(_read_json(runtime_path)),
        baseline=RuntimeSnapshot.from_payload(_read_json(baseline_path)),
        nodes=_read_json(nodes_path) or {},
        accounts=_load_accounts(accounts_path) if accounts_path else (),
        prices=_read_json(prices_path) or {},
        config=cfg,
    )

    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        return

    table = Table(title="📈 Snapshot Deltas")
    table.add_column("Metric", style="bold")
    table.add_column("Change", justify="right")
    table.add_column("Change %", justify="right")
    for label, delta in (
        ("Liquidity", result.liquidity),
        ("Available", result.available),
        ("Margin Balance", result.margin),
        ("Protection", result.protection),
    ):
        table.add_row(label, _signed(delta.absolute), _signed(delta.percentage, "%"))
    console.print(table)

    risk = Table(title="🛡 Risk")
    risk.add_column("Metric", style="bold")
    risk.add_column("Value", justify="right")
    risk.add_row("Margin Utilization", f"{result.margin_analysis.utilization_ratio:.2f}%")
    risk.add_row("Margin Level", f"{result.margin_analysis.margin_level:.2f}%")
    risk.add_row("Risk Level", _level(result.margin_analysis.risk_level))
    risk.add_row("Available / Liquidity", f"{result.available_ratio:.1f}%")
    risk.add_row("Worker Efficiency", f"{result.worker_analysis.efficiency:.1f}%")
    risk.add_row("Worker Status", _level(result.worker_analysis.status))
    console.print(risk)

    _print_network(result.network, cfg.network.top_regions)

    if result.assets.assets:
        assets = Table(title=f"💰 Assets (≥ ${cfg.portfolio.min_asset_usd:,.0f})")
        assets.add_column("Coin", style="cyan")
        assets.add_column("Amount", justify="right")
        assets.add_column("USD Value", justify="right", style="green")
        assets.add_column("Change %", justify="right")
        assets.add_column(f"Share (top {cfg.portfolio.top_assets})", justify="right")
        shares = dict(result.allocation)
        for asset in result.assets.assets:
            share = shares.get(asset.coin)
            assets.add_row(
                asset.coin,
                f"{asset.amount:,.4f}",
                f"${asset.usd_value:,.2f}",
                _signed(asset.change_pct, "%"),
                "" if share is None else f"{share:.1f}%",
            )
        assets.add_row("[bold]Total[/bold]", "", f"[bold]${result.assets.total_value:,.2f}[/bold]", "", "")
        console.print(assets)


# ─── NETWORK ─────────────────────────────────────────────────────────

def _print_network(health: Any, top_regions: int) -> None:
    table = Table(title="🌐 Network Health")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Nodes", f"{health.active_nodes} / {health.total_nodes} active")
    table.add_row("Active Ratio", f"{health.active_ratio:.1f}%")
    table.add_row("Avg CPU", f"{health.avg_cpu_usage:.2f}")
    table.add_row("Avg Memory", f"{health.avg_memory_usage:.1f}%")
    table.add_row("Regions", str(len(health.regions)))
    table.add_row("Health", _level(health.health_status))
    for country, count in health.top_regions(top_regions):
        table.add_row(f"  {country}", str(count))
    console.print(table)


@cli.command()
@click.argument("nodes_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables")
@click.pass_context
def network(ctx: click.Context, nodes_path: str, as_json: bool) -> None:
    """Network health of a node-id → telemetry map."""
    cfg: ScannerConfig = ctx.obj["config"]

    from scanner.analytics.network_health import analyze_network

    health = analyze_network(_read_json(nodes_path) or {}, config=cfg.network)
    if as_json:
        console.print_json(json.dumps(health.to_dict()))
        return
    _print_network(health, cfg.network.top_regions)


if __name__ == "__main__":
    cli()
