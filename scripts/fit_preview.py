#!/usr/bin/env python3
"""
Page-Fit Preview CLI

Inspects fit policies and exercises the page-fit controller against a simulated
render surface.

Commands:
    decide   - Run the fit calculator once for a measured height
    policy   - Show the resolved fit policy for a template and presets
    simulate - Drive a controller through a sequence of content edits

Examples:\n

    fit_preview.py decide 1200 --page-height 1000 --base 11          # Overflow zone

    fit_preview.py policy --template harvard --preset timing_fast    # Resolved policy

    fit_preview.py simulate 1300 1150 900 --template harvard         # Edit session
"""

import asyncio
import os
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from pagefit.contexts.fitting import FitZone, base_scale_for, decide, resolve_policy
from pagefit.contexts.fitting.defaults import A4_HEIGHT_PX
from pagefit.contexts.fitting.logger import setup_fitting_logger
from pagefit.contexts.fitting.simulation import run_session
from pagefit.utils.timestamp import format_elapsed, now

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))

ZONE_COLORS = {
    FitZone.OVERFLOW: typer.colors.RED,
    FitZone.SPARSE: typer.colors.YELLOW,
    FitZone.NEAR_MISS: typer.colors.YELLOW,
    FitZone.SAFETY_SHRINK: typer.colors.YELLOW,
    FitZone.WITHIN_BAND: typer.colors.GREEN,
}


app = typer.Typer(
    help="Inspect fit policies and simulate the page-fit controller",
    add_completion=False,
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


PresetOption = Annotated[
    Optional[List[str]],
    typer.Option(
        "--preset",
        "-p",
        help="Preset to apply (repeatable, later overrides earlier), e.g. timing_fast",
    ),
]
TemplateOption = Annotated[
    Optional[str],
    typer.Option("--template", "-t", help="Resume template (harvard, notion, consulting)"),
]


@app.command("decide")
def decide_command(
    measured_height: Annotated[float, typer.Argument(help="Measured content height")],
    page_height: Annotated[
        float, typer.Option("--page-height", help="Page height in the same units")
    ] = A4_HEIGHT_PX,
    base: Annotated[float, typer.Option("--base", "-b", help="Base scale (font size)")] = 11.0,
    current: Annotated[
        Optional[float],
        typer.Option("--current", "-c", help="Current override (default: base)"),
    ] = None,
    template: TemplateOption = None,
    preset: PresetOption = None,
):
    """
    Run the fit calculator once.

    Examples:\n

        $ fit_preview.py decide 1200 --page-height 1000 --base 11

        $ fit_preview.py decide 700 --page-height 1000 --base 11 --preset aggressiveness_gentle
    """
    try:
        policy = resolve_policy(template, preset)
        decision = decide(measured_height, page_height, current, base, policy)
    except ValueError as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.secho(
        f"\nZone: {decision.zone.value}", fg=ZONE_COLORS[decision.zone], bold=True
    )
    typer.echo(f"  Fill: {measured_height / page_height:.1%}")
    typer.echo(f"  Proposed scale: {decision.proposed_scale:.2f}")
    typer.echo(f"  Relative change: {decision.relative_change:.1%}")
    typer.echo(f"  Apply: {'yes' if decision.should_apply else 'no'}")
    if decision.should_warn_overflow:
        message = "could not fit" if decision.could_not_fit else "scaled to fit"
        typer.secho(f"  Overflow warning: {message}", fg=typer.colors.RED)
    typer.echo("")


@app.command("policy")
def policy_command(template: TemplateOption = None, preset: PresetOption = None):
    """
    Show the resolved fit policy.

    Examples:\n

        $ fit_preview.py policy --template notion

        $ fit_preview.py policy -p aggressiveness_strict -p timing_fast
    """
    try:
        policy = resolve_policy(template, preset)
    except ValueError as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.secho(f"\nFit policy: {template or 'default'}", fg=typer.colors.BLUE, bold=True)
    if preset:
        typer.echo(f"Presets: {', '.join(preset)}")
    for name, value in policy.to_dict().items():
        typer.echo(f"  {name:<26}{value:g}")
    typer.echo("")


@app.command("simulate")
def simulate_command(
    heights: Annotated[
        List[float],
        typer.Argument(help="Natural content heights at base scale: initial, then one per edit"),
    ],
    template: TemplateOption = None,
    base: Annotated[
        Optional[float],
        typer.Option("--base", "-b", help="Base scale (default: the template's font size)"),
    ] = None,
    page_height: Annotated[
        float, typer.Option("--page-height", help="Page height in the same units")
    ] = A4_HEIGHT_PX,
    preset: PresetOption = None,
    exponent: Annotated[
        float,
        typer.Option("--exponent", "-e", help="Growth of height with scale (1.0 = linear)"),
    ] = 1.0,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show every fit cycle on the console"),
    ] = False,
):
    """
    Drive the controller through a sequence of content edits.

    Examples:\n

        $ fit_preview.py simulate 1300 1150 900 --template harvard

        $ fit_preview.py simulate 700 --base 11 --page-height 1000 --preset timing_fast -v
    """
    try:
        if base is None:
            base = base_scale_for(template or "harvard")
        policy = resolve_policy(template, preset)
    except ValueError as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    log_dir = LOGS_PATH / f"simulate_{now()}"
    log_file = setup_fitting_logger(log_dir, verbose=verbose)

    typer.secho(f"\nSimulating: {template or 'custom'} @ {base:g}", fg=typer.colors.BLUE, bold=True)
    typer.echo(f"Edits: {len(heights) - 1}")
    typer.echo("")

    result = asyncio.run(
        run_session(
            heights,
            base,
            policy=policy,
            page_height=page_height,
            context_key=template or "",
            exponent=exponent,
        )
    )

    typer.echo("")
    for event in result.events:
        stamp = format_elapsed(event.elapsed_s)
        if event.kind == "scale":
            label = "base" if event.value is None else f"{event.value:.2f}"
            typer.secho(f"  {stamp}  scale -> {label}", fg=typer.colors.GREEN)
        elif event.kind == "warning":
            typer.secho(f"  {stamp}  warning: {event.detail}", fg=typer.colors.RED)
        elif event.kind == "edit":
            typer.echo(f"  {stamp}  edit: natural height {event.value:g}")
        else:
            typer.echo(f"  {stamp}  reset: base {event.value:g}")

    final = "base" if result.final_scale is None else f"{result.final_scale:.2f}"
    fits = result.final_height <= page_height
    typer.echo("")
    typer.secho(
        f"{'✓' if fits else '✗'} Final scale {final}, fill {result.final_fill:.1%}",
        fg=typer.colors.GREEN if fits else typer.colors.RED,
        bold=True,
    )
    typer.echo(f"  Measurements: {result.measure_count}")
    typer.echo(f"  Log: {log_file}")
    typer.echo("")

    raise typer.Exit(code=0 if fits else 1)


if __name__ == "__main__":
    app()
