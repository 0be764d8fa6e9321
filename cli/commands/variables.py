"""
Variables Command - List verifiable variables and depth levels.

Usage:
    oceanval variables
    oceanval variables --format json --depths
"""

import json
import logging

import click

from oceanval.variables import VARIABLE_SPECS, Variable

logger = logging.getLogger("oceanval.variables")


@click.command("variables")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    help="Output format (default: text).",
)
@click.option(
    "--depths",
    "-d",
    is_flag=True,
    default=False,
    help="Also list the depth levels used for profile variables.",
)
@click.pass_obj
def variables(ctx, output_format: str, depths: bool):
    """
    List verifiable variables.

    Shows each variable's unit, valid range and whether it is verified
    as a depth profile.

    \b
    Examples:
        # Variable table
        oceanval variables

        # Variable table and depth levels as JSON
        oceanval variables --format json --depths
    """
    levels = list(ctx.config.depth_levels)

    if output_format == "json":
        payload = {"variables": {v.value: VARIABLE_SPECS[v].to_dict() for v in Variable}}
        if depths:
            payload["depth_levels"] = levels
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    click.echo(f"\n{'Variable':<10} {'Unit':<6} {'Range':<16} {'Profile':<8} Description")
    click.echo("-" * 72)
    for variable in Variable:
        spec = VARIABLE_SPECS[variable]
        low, high = spec.valid_range
        click.echo(
            f"{variable.value:<10} {spec.unit:<6} {f'{low:g} to {high:g}':<16} "
            f"{'yes' if spec.is_profile else 'no':<8} {spec.description}"
        )

    if depths:
        click.echo(f"\nDepth levels ({len(levels)}): " + ", ".join(f"{d:g}" for d in levels))
    click.echo()
