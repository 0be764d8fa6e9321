"""
Stations Command - List profiling float stations and the dashboard summary.

Usage:
    oceanval stations --data samples.json
    oceanval stations --data samples.json --region "East China Sea" --status active
"""

import json
import logging
from pathlib import Path
from typing import Optional

import click

from oceanval.data.loaders import load_document
from oceanval.data.stores import StationStatus
from oceanval.exceptions import VerificationError

logger = logging.getLogger("oceanval.stations")


@click.command("stations")
@click.option(
    "--data",
    "data_path",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Sample document (JSON) with stations, observations and forecasts.",
)
@click.option(
    "--region",
    "-r",
    default=None,
    help="Only list stations in this region.",
)
@click.option(
    "--status",
    "-s",
    type=click.Choice([s.value for s in StationStatus], case_sensitive=False),
    default=None,
    help="Only list stations with this status.",
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
def stations(
    ctx,
    data_path: Path,
    region: Optional[str],
    status: Optional[str],
    output_format: str,
):
    """
    List stations and summary counts.

    \b
    Examples:
        # All stations
        oceanval stations --data samples.json

        # Active stations in a region as JSON
        oceanval stations --data samples.json -r "East China Sea" -s active -f json
    """
    try:
        document = load_document(data_path)
    except VerificationError as e:
        raise click.BadParameter(str(e), param_hint="--data")

    catalog = document.catalog
    listed = catalog.list(region=region, status=status.lower() if status else None)
    summary = catalog.summary()

    if output_format == "json":
        click.echo(json.dumps(
            {"summary": summary, "stations": [s.to_dict() for s in listed]},
            indent=2,
        ))
        return

    click.echo(f"\n{'=' * 60}")
    click.echo("  Station Summary")
    click.echo(f"{'=' * 60}")
    click.echo(f"  Stations: {summary['total_stations']} "
               f"({summary['active_stations']} active, {summary['inactive_stations']} inactive)")
    click.echo(f"  Profiles: {summary['total_profiles']}")
    if summary["latest_profile"]:
        click.echo(f"  Latest profile: {summary['latest_profile']}")

    click.echo(f"\n{'Station':<10} {'Lat':>8} {'Lon':>9} {'Status':<9} {'Profiles':>8}  Region")
    click.echo("-" * 60)
    for station in listed:
        click.echo(
            f"{station.station_id:<10} {station.latitude:>8.2f} {station.longitude:>9.2f} "
            f"{station.status.value:<9} {station.profile_count:>8}  {station.region}"
        )
    if not listed:
        click.echo("  No stations match the given filters.")
    click.echo()
