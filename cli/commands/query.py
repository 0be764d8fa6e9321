"""
Query Command - Run a validation query over a sample document.

Usage:
    oceanval query --data samples.json --station 2902123 --variable T --issue-date 2025-08-05
    oceanval query --data samples.json --station 2902123 --variable T \
        --issue-date 2025-08-05 --lead-times 3 --profile
    oceanval query --data samples.json --region "East China Sea" --variable SST \
        --issue-date 2025-08-05 -m WenHai -m GLO12
"""

import json
import logging
from pathlib import Path
from typing import Optional, Tuple

import click

from oceanval.analysis.verification import (
    DepthProfileSeries,
    LeadTimeSeries,
    ModelComparison,
    QueryRequest,
    StationSelector,
    ValidationQueryService,
)
from oceanval.data.loaders import load_document
from oceanval.data.stores import StationStatus
from oceanval.exceptions import VerificationError
from oceanval.variables import Variable

logger = logging.getLogger("oceanval.query")


def parse_lead_times(value: str) -> Tuple[int, int]:
    """Parse '3' or '1-10' into an inclusive (first, last) range."""
    text = value.strip()
    try:
        if "-" in text:
            first, last = text.split("-", 1)
            return int(first), int(last)
        lead_time = int(text)
        return lead_time, lead_time
    except ValueError:
        raise click.BadParameter(
            f"Cannot parse lead times: {value} (expected N or FIRST-LAST)",
            param_hint="--lead-times",
        )


def format_value(value: Optional[float], precision: int = 3) -> str:
    """Format a statistic, showing missing values as '--'."""
    if value is None:
        return "--"
    return f"{value:.{precision}f}"


@click.command("query")
@click.option(
    "--data",
    "data_path",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Sample document (JSON) with stations, observations and forecasts.",
)
@click.option(
    "--station",
    "station_ids",
    multiple=True,
    help="Station id (repeat for several stations).",
)
@click.option(
    "--region",
    "-r",
    default=None,
    help="Aggregate over all stations in this region.",
)
@click.option(
    "--status",
    "-s",
    type=click.Choice([s.value for s in StationStatus], case_sensitive=False),
    default=None,
    help="Select stations with this status (alone or within --region).",
)
@click.option(
    "--variable",
    "-V",
    "variable",
    type=click.Choice([v.value for v in Variable], case_sensitive=False),
    required=True,
    help="Variable to verify.",
)
@click.option(
    "--issue-date",
    "-d",
    "issue_date",
    required=True,
    help="Forecast issue date (YYYY-MM-DD).",
)
@click.option(
    "--lead-times",
    "-l",
    "lead_times",
    default="1-10",
    show_default=True,
    help="Lead time or inclusive range in days (e.g. 3 or 1-10).",
)
@click.option(
    "--profile",
    "-p",
    is_flag=True,
    default=False,
    help="Return RMSE by depth (T and S only, single lead time).",
)
@click.option(
    "--model",
    "-m",
    "models",
    multiple=True,
    help="Forecast model (repeat to compare models; default: preferred model).",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    help="Output format (default: text).",
)
@click.pass_obj
def query(
    ctx,
    data_path: Path,
    station_ids: Tuple[str, ...],
    region: Optional[str],
    status: Optional[str],
    variable: str,
    issue_date: str,
    lead_times: str,
    profile: bool,
    models: Tuple[str, ...],
    output_format: str,
):
    """
    Run a validation query.

    Returns RMSE, bias and correlation by lead time; RMSE by depth with
    --profile; or a side-by-side comparison when several models are given.

    \b
    Examples:
        # RMSE by lead time for one float
        oceanval query --data samples.json --station 2902123 -V T -d 2025-08-05

        # Temperature RMSE profile at lead day 3
        oceanval query --data samples.json --station 2902123 -V T -d 2025-08-05 -l 3 -p

        # Compare three models over a region
        oceanval query --data samples.json -r "East China Sea" -V SST -d 2025-08-05 \\
            -m WenHai -m GLO12 -m 2O1S
    """
    if station_ids and (region or status):
        raise click.BadParameter("Use either --station or --region/--status, not both")
    if not station_ids and not region and not status:
        raise click.BadParameter("One of --station, --region or --status must be provided")

    if station_ids:
        selector = StationSelector.of(*station_ids)
    else:
        selector = StationSelector(
            region=region,
            status=StationStatus(status.lower()) if status else None,
        )

    request = QueryRequest(
        station_selector=selector,
        variable=variable,
        forecast_issue_date=issue_date,
        lead_time_range=parse_lead_times(lead_times),
        depth_requested=profile,
        models=tuple(models),
    )

    try:
        document = load_document(data_path)
    except VerificationError as e:
        raise click.BadParameter(str(e), param_hint="--data")

    try:
        with ValidationQueryService(
            document.catalog,
            document.observations,
            document.forecasts,
            config=ctx.config,
        ) as service:
            result = service.query(request)
    except VerificationError as e:
        logger.debug(f"Query failed: {e!r}")
        click.echo(f"\nError ({e.error_type}): {e}", err=True)
        raise SystemExit(1)

    if output_format == "json":
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    if isinstance(result, ModelComparison):
        output_text_comparison(result)
    elif isinstance(result, DepthProfileSeries):
        output_text_profile(result)
    else:
        output_text_series(result)


def _header(title: str, variable: Variable, issue_date, station_ids) -> None:
    click.echo(f"\n{'=' * 60}")
    click.echo(f"  {title}")
    click.echo(f"{'=' * 60}")
    click.echo(f"  Variable: {variable.value} ({variable.spec.long_name}, {variable.spec.unit})")
    click.echo(f"  Issue date: {issue_date.isoformat()}")
    click.echo(f"  Stations: {', '.join(station_ids)}")


def output_text_series(series: LeadTimeSeries) -> None:
    """Output a lead-time series as a table."""
    _header("RMSE by Lead Time", series.variable, series.issue_date, series.station_ids)
    click.echo(f"  Model: {series.model_id}")

    click.echo(f"\n  {'Lead':>4}  {'RMSE':>8}  {'Bias':>8}  {'Corr':>6}  {'N':>5}")
    for point in series.points:
        n = point.statistics.n_samples if point.statistics else 0
        click.echo(
            f"  {point.lead_time:>4}  {format_value(point.rmse):>8}  "
            f"{format_value(point.bias):>8}  {format_value(point.correlation, 2):>6}  {n:>5}"
        )
    click.echo()


def output_text_profile(profile: DepthProfileSeries) -> None:
    """Output a depth profile as a table."""
    _header(
        f"RMSE by Depth (lead day {profile.lead_time})",
        profile.variable, profile.issue_date, profile.station_ids,
    )
    click.echo(f"  Model: {profile.model_id}")

    click.echo(f"\n  {'Depth (m)':>9}  {'RMSE':>8}  {'N':>5}")
    for point in profile.points:
        n = point.statistics.n_samples if point.statistics else 0
        click.echo(f"  {point.depth:>9g}  {format_value(point.rmse):>8}  {n:>5}")
    click.echo()


def output_text_comparison(comparison: ModelComparison) -> None:
    """Output a model comparison as an RMSE table."""
    _header(
        "Model Comparison (RMSE)",
        comparison.variable, comparison.issue_date, comparison.station_ids,
    )

    models = comparison.model_ids
    click.echo("\n  " + f"{'Lead':>4}  " + "  ".join(f"{m:>8}" for m in models))
    for lead_time in comparison.lead_times:
        cells = "  ".join(
            f"{format_value(comparison.rmse_at(m, lead_time)):>8}" for m in models
        )
        click.echo(f"  {lead_time:>4}  {cells}")

    if comparison.failures:
        click.echo("\n  Models without results:")
        for failure in comparison.failures.values():
            click.echo(f"    {failure.model_id}: {failure.error_type} - {failure.message}")
    click.echo()
