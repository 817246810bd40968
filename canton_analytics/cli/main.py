"""Command-line interface for Canton Network analytics."""

import asyncio
import json
import sys
from dataclasses import asdict
from datetime import timedelta
from typing import Optional

import click
import structlog

from canton_analytics.core.featured_app_data import fetch_featured_app_report_data
from canton_analytics.core.finops import ValidatorFinOpsCalculator
from canton_analytics.core.finops_data import fetch_validator_finops_data
from canton_analytics.core.report_generator import ReportGenerator, checklist_completion
from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.core.scan_client import ScanApiClient, ScanApiError
from canton_analytics.models.config import AnalyticsConfig
from canton_analytics.utils.logging import setup_logging
from canton_analytics.utils.time import get_current_utc

logger = structlog.get_logger(__name__)


def _run(ctx, action):
    """Run ``action(service)`` against a fresh client; upstream errors exit with status 1."""
    config = ctx.obj['config']
    client_factory = ctx.obj.get('client_factory', ScanApiClient)

    async def runner():
        async with client_factory(config) as client:
            return await action(ScanDataService(client, config))

    try:
        return asyncio.run(runner())
    except ScanApiError as e:
        logger.error("CLI command failed", code=e.code, status=e.status, error=e.message)
        click.echo(f"❌ Upstream error ({e.code}): {e.message}", err=True)
        sys.exit(1)


def _window(days: int):
    end = get_current_utc()
    return end - timedelta(days=days), end


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option('--config-file', '-c', type=click.Path(exists=True),
              help='Path to .env configuration file')
@click.option('--log-level', '-l', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Logging level')
@click.pass_context
def cli(ctx, config_file: Optional[str], log_level: str):
    """Canton Network analytics CLI."""
    ctx.ensure_object(dict)

    try:
        if config_file:
            config = AnalyticsConfig(_env_file=config_file)
        else:
            config = AnalyticsConfig()
    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    config.log_level = log_level
    setup_logging(config)
    ctx.obj['config'] = config


@cli.command()
@click.pass_context
def nodes(ctx):
    """Show configured upstream nodes in priority order."""
    config = ctx.obj['config']
    for node in sorted(config.nodes, key=lambda n: n.priority):
        click.echo(f"[{node.priority}] {node.name}: {node.url}")


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Output raw JSON')
@click.pass_context
def validators(ctx, as_json: bool):
    """List validators with liveness and missed rounds."""
    results = _run(ctx, lambda service: service.get_validator_liveness())

    if as_json:
        _echo_json([asdict(v) for v in results])
        return

    click.echo(f"📊 {len(results)} validators")
    for v in results:
        click.echo(f"{v.validator_id}  status={v.status}  liveness={v.liveness_rounds}  missed={v.missed_rounds}")


@cli.command()
@click.argument('validator_id')
@click.pass_context
def validator(ctx, validator_id: str):
    """Show a single validator."""
    info = _run(ctx, lambda service: service.get_validator_info(validator_id))
    _echo_json(asdict(info))


@cli.command()
@click.option('--vote-id', default=None, help='Show a single vote by contract or tracking id')
@click.pass_context
def votes(ctx, vote_id: Optional[str]):
    """List open governance votes."""
    if vote_id:
        vote = _run(ctx, lambda service: service.get_governance_vote_detail(vote_id))
        if vote is None:
            click.echo(f"❌ Vote {vote_id} not found", err=True)
            sys.exit(1)
        _echo_json(asdict(vote))
        return

    open_votes = _run(ctx, lambda service: service.get_open_votes())
    click.echo(f"🗳️  {len(open_votes)} open votes")
    for vote in open_votes:
        action = vote.payload.action or "-"
        click.echo(f"{vote.contract_id or vote.tracking_cid}  action={action}  "
                   f"accept={vote.accept_count} reject={vote.reject_count}")


@cli.command()
@click.argument('validator_id')
@click.option('--days', '-d', type=int, default=30, help='Analysis period in days')
@click.option('--compute', type=float, default=0.0, help='Monthly compute cost (CC)')
@click.option('--storage', type=float, default=0.0, help='Monthly storage cost (CC)')
@click.option('--network', type=float, default=0.0, help='Monthly network cost (CC)')
@click.option('--monitoring', type=float, default=0.0, help='Monthly monitoring cost (CC)')
@click.pass_context
def finops(ctx, validator_id: str, days: int, compute: float, storage: float,
           network: float, monitoring: float):
    """Runway, margin and health for a validator."""
    start, end = _window(days)
    costs = {"compute": compute, "storage": storage, "network": network, "monitoring": monitoring}

    data = _run(ctx, lambda service: fetch_validator_finops_data(
        service, validator_id, start, end, infrastructure_costs=costs))
    calculator = ValidatorFinOpsCalculator(data)

    runway = calculator.calculate_runway()
    margin = calculator.calculate_net_margin()
    health = calculator.get_financial_health()

    runway_text = "unlimited" if runway.is_infinite else f"{runway.days_remaining} days"
    click.echo(f"Runway: {runway_text} ({runway.warning_level.value})")
    click.echo(f"Net margin: {margin.net_margin:.2f} CC ({margin.margin_percentage:.1f}%)")
    click.echo(f"Break-even: {margin.break_even_point:.2f} CC/day")
    click.echo(f"Changes: {calculator.analyze_changes().summary}")
    for scenario in calculator.generate_scenarios():
        scenario_runway = "unlimited" if scenario.runway_days == float("inf") else f"{scenario.runway_days} days"
        click.echo(f"  {scenario.name.value}: monthly margin {scenario.monthly_net_margin:.2f} CC, "
                   f"runway {scenario_runway}")
    click.echo(f"Health: {health.status.value} - {health.message}")
    for recommendation in health.recommendations:
        click.echo(f"  - {recommendation}")


@cli.command()
@click.argument('party_id')
@click.option('--app-name', default=None, help='Application name (defaults to the party id)')
@click.option('--days', '-d', type=int, default=30, help='Report period in days')
@click.option('--format', 'output_format', type=click.Choice(['csv', 'json']), default='csv')
@click.option('--output', '-o', type=click.Path(dir_okay=False, writable=True), default=None,
              help='Write to file instead of stdout')
@click.pass_context
def report(ctx, party_id: str, app_name: Optional[str], days: int,
           output_format: str, output: Optional[str]):
    """Featured-app report with evidence bundle."""
    start, end = _window(days)
    data = _run(ctx, lambda service: fetch_featured_app_report_data(
        service, party_id, start, end, app_name=app_name))
    generator = ReportGenerator(data)

    if output_format == 'csv':
        content = generator.generate_csv()
    else:
        checklist = generator.get_requirements_checklist()
        completed, total, percentage = checklist_completion(checklist)
        content = json.dumps({
            "report": asdict(data),
            "evidence": asdict(generator.get_evidence_bundle()),
            "checklist": [asdict(c) for c in checklist],
            "completion": {"completed": completed, "total": total, "percentage": percentage},
        }, indent=2, default=str)

    if output:
        with open(output, 'w', encoding='utf-8', newline='') as f:
            f.write(content)
        click.echo(f"✅ Report written to {output}")
    else:
        click.echo(content)


@cli.command()
@click.option('--host', default=None, help='Bind host (defaults to configuration)')
@click.option('--port', type=int, default=None, help='Bind port (defaults to configuration)')
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int]):
    """Run the HTTP API."""
    import uvicorn

    from canton_analytics.api.main import create_app

    config = ctx.obj['config']
    bind_host = host or config.api_host
    bind_port = port or config.api_port

    click.echo(f"🚀 Serving Canton Analytics API on {bind_host}:{bind_port}")
    uvicorn.run(create_app(config), host=bind_host, port=bind_port,
                log_level=config.log_level.lower())


if __name__ == '__main__':
    cli()
