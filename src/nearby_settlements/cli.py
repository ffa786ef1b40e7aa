"""CLI entrypoint for nearby-settlements."""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from nearby_settlements.border import BorderLoadError, load_border
from nearby_settlements.geo import haversine_km
from nearby_settlements.models import ReportRow
from nearby_settlements.point_filter import DEFAULT_BUFFER_DEG, MeridianRetryPolicy, PointFilter
from nearby_settlements.sources import (
    BORDER_SOURCES,
    DEFAULT_SCRIPT,
    DEFAULT_SERVICE,
    LOOKUP_SERVICES,
    NAME_SCRIPTS,
)

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _border_source(country: str, border: str | None) -> str:
    if border:
        return border
    try:
        return BORDER_SOURCES[country.upper()]
    except KeyError:
        raise click.BadParameter(
            f"no built-in border for '{country}', use --border", param_hint="--country",
        ) from None


def _preview_table(rows: list[ReportRow], limit: int) -> Table:
    table = Table(title=f"Nearby settlements ({len(rows)} rows)")
    table.add_column("Origin")
    table.add_column("Settlement")
    table.add_column("Kind", width=8)
    table.add_column("Population", justify="right")
    table.add_column("Distance (km)", justify="right")

    for row in rows[:limit]:
        table.add_row(
            row.origin_name,
            row.match_name,
            row.match_kind,
            str(row.match_population),
            f"{row.distance_km:.2f}",
        )
    return table


border_options = [
    click.option("--country", default="RUS", show_default=True, help="ISO3 code of a built-in border."),
    click.option("--border", "border", default=None, help="GeoJSON border file or URL (overrides --country)."),
]


def _with_border_options(func):
    for option in reversed(border_options):
        func = option(func)
    return func


@click.group()
def cli():
    """Nearby settlements: border-filtered grid points and the settlements around them."""


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("output_path", type=click.Path(dir_okay=False))
@_with_border_options
@click.option("--radius", default=100.0, show_default=True, help="Search radius in km.")
@click.option("--service", default=DEFAULT_SERVICE, type=click.Choice(sorted(LOOKUP_SERVICES)), show_default=True)
@click.option("--script", default=DEFAULT_SCRIPT, type=click.Choice(sorted(NAME_SCRIPTS)), show_default=True,
              help="Script settlement names must be written in.")
@click.option("--exclusions", default=None, type=click.Path(exists=True, dir_okay=False),
              help="File of names to exclude (default: second sheet of INPUT_PATH).")
@click.option("--buffer", "buffer_deg", default=DEFAULT_BUFFER_DEG, show_default=True,
              help="Point buffer in degrees for the border test.")
@click.option("--meridian-threshold", default=170.0, show_default=True,
              help="|lon| above which the antimeridian retry kicks in.")
@click.option("--no-meridian-retry", is_flag=True, help="Disable the antimeridian retry.")
@click.option("--sort", "sort_by_distance", is_flag=True, help="Sort each origin's matches by distance.")
@click.option("--limit", default=20, help="Rows to show in the preview table.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
def run(input_path, output_path, country, border, radius, service, script, exclusions,
        buffer_deg, meridian_threshold, no_meridian_retry, sort_by_distance, limit, verbose):
    """Filter INPUT_PATH by border, find nearby settlements, write OUTPUT_PATH."""
    from nearby_settlements.pipeline import PipelineSettings, run as run_pipeline

    _setup_logging(verbose)
    settings = PipelineSettings(
        radius_km=radius,
        buffer_deg=buffer_deg,
        retry_policy=None if no_meridian_retry else MeridianRetryPolicy(threshold_deg=meridian_threshold),
        script=script,
        sort_by_distance=sort_by_distance,
    )

    try:
        summary = run_pipeline(
            input_path,
            output_path,
            _border_source(country, border),
            exclusions_path=exclusions,
            service=service,
            settings=settings,
        )
    except BorderLoadError as exc:
        console.print(f"[bold red]Could not load border, aborting:[/] {exc}")
        sys.exit(1)

    click.echo(
        f"Points read: {summary.input_points}, inside border: {summary.filtered_points}, "
        f"failed lookups: {summary.failed_lookups}"
    )
    if summary.rows:
        console.print(_preview_table(summary.rows, limit))
    click.echo(f"Done. {len(summary.rows)} row(s) written to {output_path}")


@cli.command("filter")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@_with_border_options
@click.option("--output", "output_path", default=None, type=click.Path(dir_okay=False),
              help="Write the kept points here.")
@click.option("--no-meridian-retry", is_flag=True, help="Disable the antimeridian retry.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
def filter_points(input_path, country, border, output_path, no_meridian_retry, verbose):
    """Only run the border filter on INPUT_PATH."""
    from nearby_settlements import tables

    _setup_logging(verbose)
    try:
        index = load_border(_border_source(country, border))
    except BorderLoadError as exc:
        console.print(f"[bold red]Could not load border, aborting:[/] {exc}")
        sys.exit(1)

    records = tables.read_candidates(input_path)
    point_filter = PointFilter(index, retry_policy=None if no_meridian_retry else MeridianRetryPolicy())
    kept = point_filter.filter(records)

    click.echo(f"Points inside border: {len(kept)} of {len(records)}")
    if output_path:
        tables.write_candidates(kept, output_path)
        click.echo(f"Saved to {output_path}")


@cli.command()
@click.argument("lat1", type=float)
@click.argument("lon1", type=float)
@click.argument("lat2", type=float)
@click.argument("lon2", type=float)
def distance(lat1: float, lon1: float, lat2: float, lon2: float):
    """Great-circle distance in km between two points."""
    click.echo(f"{haversine_km(lat1, lon1, lat2, lon2):.2f} km")
