"""
Ocean Forecast Verification CLI - Main Entry Point

Command-line interface for the ocean forecast verification engine.
Built with Click for robust argument parsing and help generation.
"""

import sys
import logging
from pathlib import Path
from typing import Optional

import click

from oceanval import __version__

# Configure logging for CLI
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("oceanval")


class OceanvalContext:
    """Context object for passing global options to subcommands."""

    def __init__(
        self,
        verbose: bool = False,
        quiet: bool = False,
        config_path: Optional[Path] = None,
    ):
        self.verbose = verbose
        self.quiet = quiet
        self.config_path = config_path
        self._config = None

        # Configure logging based on verbosity
        if quiet:
            logger.setLevel(logging.WARNING)
        elif verbose:
            logger.setLevel(logging.DEBUG)
        else:
            logger.setLevel(logging.INFO)

    @property
    def config(self):
        """Lazy load engine configuration."""
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self):
        """Load configuration from file, a default location or the environment."""
        from oceanval.config import EngineConfig

        if self.config_path:
            logger.debug(f"Loading config from {self.config_path}")
            return EngineConfig.from_yaml(str(self.config_path))

        # Check for default config locations
        default_paths = [
            Path.cwd() / ".oceanval.yaml",
            Path.cwd() / "oceanval.yaml",
            Path.home() / ".oceanval" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                try:
                    config = EngineConfig.from_yaml(str(path))
                    logger.debug(f"Loaded config from {path}")
                    return config
                except (ValueError, TypeError) as e:
                    logger.warning(f"Failed to load config from {path}: {e}")

        return EngineConfig.from_environment()


# Custom Click group with enhanced help formatting
class OceanvalGroup(click.Group):
    """Custom Click group with improved help formatting."""

    def format_help(self, ctx, formatter):
        """Format help with custom banner and examples."""
        formatter.write_paragraph()
        formatter.write_text("oceanval - Ocean Forecast Verification")
        formatter.write_paragraph()
        formatter.write_text(
            "Validate ocean model forecasts against profiling-float observations."
        )
        formatter.write_paragraph()

        super().format_help(ctx, formatter)

        formatter.write_paragraph()
        formatter.write_text("Examples:")
        formatter.indent()

        examples = [
            "# List verifiable variables",
            "oceanval variables",
            "",
            "# Active stations in a region",
            "oceanval stations --data samples.json --region 'East China Sea' --status active",
            "",
            "# RMSE by lead time for one float",
            "oceanval query --data samples.json --station 2902123 --variable T --issue-date 2025-08-05",
            "",
            "# Temperature RMSE profile at lead day 3",
            "oceanval query --data samples.json --station 2902123 --variable T "
            "--issue-date 2025-08-05 --lead-times 3 --profile",
            "",
            "# Compare models",
            "oceanval query --data samples.json --region 'East China Sea' --variable SST "
            "--issue-date 2025-08-05 -m WenHai -m GLO12 -m 2O1S",
        ]

        for line in examples:
            formatter.write_text(line)

        formatter.dedent()


pass_context = click.make_pass_decorator(OceanvalContext, ensure=True)


@click.group(cls=OceanvalGroup)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable verbose output (debug logging).",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    default=False,
    help="Quiet mode (only warnings and errors).",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file.",
)
@click.version_option(
    version=__version__,
    prog_name="oceanval",
    message="%(prog)s version %(version)s - Ocean Forecast Verification CLI",
)
@click.pass_context
def app(ctx, verbose: bool, quiet: bool, config_path: Optional[Path]):
    """
    oceanval - Ocean Forecast Verification

    Computes RMSE, bias and correlation of ocean model forecasts (T, S, SST,
    SLA, U, V) against Argo float observations, by lead time, by depth and
    across models.
    """
    # Handle mutually exclusive verbose/quiet
    if verbose and quiet:
        raise click.UsageError("Cannot use both --verbose and --quiet")

    ctx.obj = OceanvalContext(
        verbose=verbose,
        quiet=quiet,
        config_path=config_path,
    )


def register_commands():
    """Register all subcommands."""
    from cli.commands import query, stations, variables

    app.add_command(variables.variables)
    app.add_command(stations.stations)
    app.add_command(query.query)


@app.command("info")
@pass_context
def info(ctx):
    """Display system information and engine configuration."""
    import platform
    import importlib.metadata

    click.echo("\n=== oceanval System Info ===\n")

    click.echo(f"Python: {platform.python_version()}")
    click.echo(f"Platform: {platform.system()} {platform.release()}")

    click.echo("\n--- Package Versions ---")
    for pkg in ["numpy", "click", "pyyaml"]:
        try:
            version = importlib.metadata.version(pkg)
            click.echo(f"  {pkg}: {version}")
        except importlib.metadata.PackageNotFoundError:
            click.echo(f"  {pkg}: not installed")

    click.echo("\n--- Configuration ---")
    config = ctx.config
    click.echo(f"  Max lead time: {config.max_lead_time} days")
    click.echo(f"  Match window: +/-{config.tolerance.time_window_hours} h")
    click.echo(f"  Match radius: {config.tolerance.radius_km} km")
    click.echo(f"  Depth levels: {len(config.depth_levels)}")
    click.echo(f"  Model ranking: {', '.join(config.model_ranking)}")
    click.echo(f"  Workers: {config.worker_count}")
    click.echo(f"  Cache TTL: {config.cache.default_ttl_seconds}s")

    click.echo()


register_commands()


def main():
    """Main entry point for the CLI."""
    try:
        app()
    except Exception as e:
        logger.error(f"Error: {e}")
        if "--verbose" in sys.argv or "-v" in sys.argv:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
