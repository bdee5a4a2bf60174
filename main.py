#!/usr/bin/env python3
"""PowerWatch - CLI Entry Point."""
import sys
import json
import time
import logging
from datetime import timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()
logger = logging.getLogger("powerwatch.cli")


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import StoreError
    from monitor.monitor import PowerMonitor
    from alerts.rules_manager import RulesManager

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config["logging"]["level"], config["logging"].get("file"))

    try:
        monitor = PowerMonitor.from_config(config)
    except StoreError as e:
        console.print(f"[red]✗[/red] {e}")
        raise SystemExit(1)

    rules = RulesManager(monitor.db, config["evaluator"]["rules_path"])
    return {"config": config, "db": monitor.db, "monitor": monitor, "rules": rules}


def _parse_time(value):
    if value is None:
        return None
    from utils.timeutil import to_utc
    try:
        return to_utc(value)
    except ValueError:
        raise click.BadParameter(f"not an ISO-8601 timestamp: {value!r}")


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="powerwatch")
@click.pass_context
def cli(ctx, config_path, verbose):
    """PowerWatch - power telemetry rollups, energy totals and threshold alerts."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


# ──────────────────────────────────────────────────────
# INGESTION & QUERIES
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--power", required=True, type=float, help="Power in watts")
@click.option("--voltage", required=True, type=float, help="Voltage in volts")
@click.option("--current", required=True, type=float, help="Current in amperes")
@click.option("--timestamp", default=None, help="ISO timestamp (default: now)")
@click.pass_context
def ingest(ctx, power, voltage, current, timestamp):
    """Store one telemetry reading."""
    c = _get_components(ctx)
    sample = c["monitor"].ingest(power, voltage, current, _parse_time(timestamp))
    console.print(f"[green]✓[/green] Stored sample {sample.id} at {sample.timestamp.isoformat()}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def latest(ctx, as_json):
    """Show the latest reading and the recent average."""
    from utils.formatters import format_watts, time_ago
    c = _get_components(ctx)
    sample = c["monitor"].latest()
    if sample is None:
        console.print("[dim]No samples stored yet.[/dim]")
        return
    recent = c["monitor"].recent()
    if as_json:
        console.print(json.dumps({"latest": sample.to_dict(), "average": recent["average"]}, indent=2))
        return
    console.print(f"[bold]{format_watts(sample.power)}[/bold]  {sample.voltage:.1f} V  "
                  f"{sample.current:.2f} A  [dim]({time_ago(sample.timestamp)})[/dim]")
    if recent["recent"] is None:
        console.print("[yellow]No reading in the last few seconds - source may be offline[/yellow]")
    avg = recent["average"]
    if avg:
        console.print(f"  {c['config']['store']['average_window_minutes']}-min average: "
                      f"{format_watts(avg['power'])} over {avg['count']} samples")


@cli.command()
@click.option("--start", required=True, help="Start (ISO timestamp, inclusive)")
@click.option("--end", default=None, help="End (ISO timestamp, exclusive; default: now)")
@click.option("--resolution", default="hour", type=click.Choice(["minute", "hour", "day"]))
@click.pass_context
def series(ctx, start, end, resolution):
    """Show aggregated averages for a time range."""
    from utils.formatters import format_watts
    from utils.timeutil import utcnow
    c = _get_components(ctx)
    buckets = c["monitor"].series(_parse_time(start), _parse_time(end) or utcnow(), resolution)
    if not buckets:
        console.print("[dim]No data in range. Run 'rollup run' for hour/day series.[/dim]")
        return
    table = Table(title=f"{resolution.title()} series", show_header=True)
    table.add_column("Start", style="dim")
    table.add_column("Avg Power")
    table.add_column("Avg Voltage")
    table.add_column("Avg Current")
    table.add_column("Samples")
    for b in buckets:
        table.add_row(b.bucket_start.strftime("%Y-%m-%d %H:%M"), format_watts(b.avg_power),
                      f"{b.avg_voltage:.1f} V", f"{b.avg_current:.2f} A", str(b.count))
    console.print(table)


# ──────────────────────────────────────────────────────
# ENERGY
# ──────────────────────────────────────────────────────
@cli.group()
def energy():
    """Energy consumption (kWh)."""
    pass


@energy.command("total")
@click.option("--start", required=True, help="Start (ISO timestamp, inclusive)")
@click.option("--end", default=None, help="End (ISO timestamp, exclusive; default: now)")
@click.option("--resolution", default="minute", type=click.Choice(["minute", "hour", "day"]))
@click.pass_context
def energy_total(ctx, start, end, resolution):
    """Total energy for a period."""
    from utils.formatters import format_kwh
    from utils.timeutil import utcnow
    c = _get_components(ctx)
    kwh = c["monitor"].energy(_parse_time(start), _parse_time(end) or utcnow(), resolution)
    console.print(f"[bold]{format_kwh(kwh)}[/bold]")


@energy.command("compare")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def energy_compare(ctx, as_json):
    """Compare today/yesterday, this/last week and this/last month."""
    from utils.formatters import format_kwh
    c = _get_components(ctx)
    result = c["monitor"].energy_comparison()
    if as_json:
        console.print(json.dumps(result, indent=2))
        return
    table = Table(title="Energy Comparison", show_header=True)
    table.add_column("Period", style="dim")
    table.add_column("Current")
    table.add_column("Previous")
    for label, cur, prev in [("Day", "today", "yesterday"),
                             ("Week", "this_week", "last_week"),
                             ("Month", "this_month", "last_month")]:
        table.add_row(label, format_kwh(result[cur]), format_kwh(result[prev]))
    console.print(table)


# ──────────────────────────────────────────────────────
# ROLLUP
# ──────────────────────────────────────────────────────
@cli.group()
def rollup():
    """Hour/day rollup buckets."""
    pass


@rollup.command("run")
@click.option("--since", default=None, help="Recompute from this ISO timestamp instead of the retention window")
@click.pass_context
def rollup_run(ctx, since):
    """Recompute rollup buckets now."""
    c = _get_components(ctx)
    report = c["monitor"].run_rollup(since=_parse_time(since))
    console.print(f"[green]✓[/green] {report.hour_buckets} hour and {report.day_buckets} day buckets written")


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert management."""
    pass


@alerts.command("check")
@click.pass_context
def alerts_check(ctx):
    """Evaluate all active alert rules against the latest sample."""
    c = _get_components(ctx)
    triggered = c["monitor"].check_alerts()
    if triggered:
        console.print(f"[bold yellow]{len(triggered)} alert(s) triggered:[/bold yellow]")
    console.print(c["monitor"].evaluator.format_alert_summary(triggered))


@alerts.command("test")
@click.pass_context
def alerts_test(ctx):
    """Test all rules (ignore cooldowns, no state change) against the latest sample."""
    c = _get_components(ctx)
    results = c["monitor"].evaluator.preview(c["monitor"].latest())

    table = Table(title="Alert Rules Test", show_header=True)
    table.add_column("Rule")
    table.add_column("Metric")
    table.add_column("Condition")
    table.add_column("Current")
    table.add_column("Would Fire")
    table.add_column("Active")

    for r in results:
        fire_str = "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]"
        val = f"{r['current_value']:.2f}" if r["current_value"] is not None else "N/A"
        table.add_row(r["name"], r["metric"], f"{r['condition']} {r['threshold']}",
                      val, fire_str, "✓" if r["active"] else "✗")
    console.print(table)


@alerts.command("history")
@click.option("--alert-id", default=None, help="Only this rule")
@click.option("--metric", default=None, type=click.Choice(["power", "voltage", "current"]))
@click.option("--start", default=None, help="From (ISO timestamp)")
@click.option("--end", default=None, help="Until (ISO timestamp)")
@click.option("--limit", default=20, type=int)
@click.option("--skip", default=0, type=int)
@click.pass_context
def alerts_history(ctx, alert_id, metric, start, end, limit, skip):
    """Show past alert triggers."""
    c = _get_components(ctx)
    page = c["monitor"].history(alert_id=alert_id, metric=metric, start=_parse_time(start),
                                end=_parse_time(end), limit=limit, skip=skip)
    if not page.events:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title=f"Alert History ({skip + 1}-{skip + len(page.events)} of {page.total})",
                  show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Rule")
    table.add_column("Condition")
    table.add_column("Value")
    table.add_column("Message")
    for e in page.events:
        table.add_row(e.triggered_at.strftime("%Y-%m-%d %H:%M:%S"), e.alert_name,
                      f"{e.metric} {e.condition} {e.threshold}", f"{e.actual_value:.2f}",
                      (e.message or "")[:60])
    console.print(table)
    if page.has_more:
        console.print(f"[dim]More available: --skip {skip + limit}[/dim]")


@alerts.command("stats")
@click.option("--days", default=7, type=int, help="Days to look back")
@click.pass_context
def alerts_stats(ctx, days):
    """Trigger counts per rule."""
    from utils.timeutil import utcnow
    c = _get_components(ctx)
    stats = c["monitor"].history_recorder.stats(start=utcnow() - timedelta(days=days))
    if not stats:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title=f"Alert Stats (last {days}d)", show_header=True)
    table.add_column("Rule")
    table.add_column("Count")
    table.add_column("Last Triggered", style="dim")
    for s in stats:
        table.add_row(s["alert_name"], str(s["count"]), s["last_triggered"][:19])
    console.print(table)


@alerts.command("rules")
@click.pass_context
def alerts_rules(ctx):
    """List all stored alert rules with their trigger state."""
    from utils.formatters import time_ago
    c = _get_components(ctx)
    rules = c["rules"].get_all_rules()
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("Cooldown")
    table.add_column("Active")
    table.add_column("Triggered")
    table.add_column("Count")
    table.add_column("Last")
    for r in rules:
        table.add_row(r.id, r.name, f"{r.metric} {r.condition} {r.threshold}",
                      f"{r.cooldown_seconds}s",
                      "[green]✓[/green]" if r.active else "[red]✗[/red]",
                      "[bold red]YES[/bold red]" if r.triggered else "no",
                      str(r.trigger_count), time_ago(r.last_triggered_at))
    console.print(table)


@alerts.command("ack")
@click.argument("rule_id")
@click.pass_context
def alerts_ack(ctx, rule_id):
    """Acknowledge a triggered rule (cooldown keeps running)."""
    c = _get_components(ctx)
    if c["rules"].acknowledge(rule_id):
        console.print(f"[green]✓[/green] Acknowledged {rule_id}")
    else:
        console.print(f"[red]No rule with id {rule_id}[/red]")


@alerts.command("toggle")
@click.argument("rule_id")
@click.option("--on/--off", "state", default=None, help="Set the state instead of flipping it")
@click.pass_context
def alerts_toggle(ctx, rule_id, state):
    """Enable or disable a rule."""
    c = _get_components(ctx)
    if state is None:
        state = c["rules"].toggle(rule_id)
    elif not c["rules"].set_active(rule_id, state):
        state = None
    if state is None:
        console.print(f"[red]No rule with id {rule_id}[/red]")
    else:
        console.print(f"{rule_id} is now {'active' if state else 'inactive'}")


@alerts.command("delete")
@click.argument("rule_id")
@click.pass_context
def alerts_delete(ctx, rule_id):
    """Remove a rule definition (its history is kept)."""
    c = _get_components(ctx)
    if c["rules"].delete(rule_id):
        console.print(f"[green]✓[/green] Deleted {rule_id}")
    else:
        console.print(f"[red]No rule with id {rule_id}[/red]")


@alerts.command("sync")
@click.option("--file", "rules_file", default=None, help="Rules YAML (default: evaluator.rules_path)")
@click.pass_context
def alerts_sync(ctx, rules_file):
    """Load rule definitions from YAML into the database."""
    from alerts.rules_manager import RulesManager
    c = _get_components(ctx)
    manager = RulesManager(c["db"], rules_file) if rules_file else c["rules"]
    count = manager.sync()
    console.print(f"[green]✓[/green] Synced {count} rule(s)")


@alerts.command("purge")
@click.option("--older-than", default=None, help="Delete entries before this ISO timestamp")
@click.option("--alert-id", default=None, help="Delete entries of this rule")
@click.pass_context
def alerts_purge(ctx, older_than, alert_id):
    """Delete alert history entries."""
    c = _get_components(ctx)
    try:
        removed = c["monitor"].history_recorder.purge(older_than=_parse_time(older_than),
                                                      alert_id=alert_id)
    except ValueError as e:
        raise click.UsageError(str(e))
    console.print(f"Deleted {removed} history entries")


# ──────────────────────────────────────────────────────
# RUN
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def run(ctx):
    """Run the alert evaluator and rollup tasks until interrupted."""
    c = _get_components(ctx)
    monitor = c["monitor"]
    cfg = c["config"]
    monitor.start()
    console.print(f"[bold]PowerWatch running[/bold] - alerts every {cfg['evaluator']['interval_seconds']}s, "
                  f"rollups every {cfg['rollup']['interval_seconds']}s. Ctrl-C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        monitor.close()


if __name__ == "__main__":
    cli()
