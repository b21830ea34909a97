"""Click CLI commands for geodata."""

import asyncio
import logging

import click

from .builder import GeoDataBuilder
from .constants import DEFAULT_RADIUS
from .errors import GeoDataError
from .export import Layer, collect_layers, export_layers
from .geometry import terrain_mesh
from .models import FeatureType

logger = logging.getLogger(__name__)

TYPE_CHOICES = [t.value for t in FeatureType]

# Negative coordinates such as -74.0 are positionals, not short options
COORDINATE_ARGS = {"ignore_unknown_options": True}


@click.group()
def cli():
    """Download OpenStreetMap data and turn it into 3D geometry."""
    pass


@cli.command(context_settings=COORDINATE_ARGS)
@click.argument('lat', type=float)
@click.argument('lon', type=float)
@click.option('--radius', '-r', default=DEFAULT_RADIUS, help='Radius in meters')
@click.option('--type', '-t', 'types', multiple=True,
              type=click.Choice(TYPE_CHOICES, case_sensitive=False),
              help='Feature class to download (repeatable, default: All)')
def summary(lat: float, lon: float, radius: float, types):
    """Download features around LAT LON and print a summary."""
    builder = GeoDataBuilder()
    asyncio.run(async_summary(builder, lat, lon, radius, types))


@cli.command(context_settings=COORDINATE_ARGS)
@click.argument('lat', type=float)
@click.argument('lon', type=float)
@click.option('--radius', '-r', default=DEFAULT_RADIUS, help='Radius in meters')
@click.option('--output', '-o', default='model.glb', help='Output file (.glb, .stl, .ply, .obj)')
@click.option('--type', '-t', 'types', multiple=True,
              type=click.Choice(TYPE_CHOICES, case_sensitive=False),
              help='Feature class to include (repeatable, default: All)')
@click.option('--projection', '-p', default='equirectangular',
              type=click.Choice(['equirectangular', 'utm']), help='Local projection')
@click.option('--height-scale', default=1.0, help='Building height multiplier')
@click.option('--surfaces/--no-surfaces', default=True, help='Generate road, water and area surfaces')
def build(lat: float, lon: float, radius: float, output: str, types,
          projection: str, height_scale: float, surfaces: bool):
    """Build a 3D model of the features around LAT LON."""
    builder = GeoDataBuilder()
    asyncio.run(async_build(builder, lat, lon, radius, output, types,
                            projection, height_scale, surfaces))


@cli.command(context_settings=COORDINATE_ARGS)
@click.argument('lat', type=float)
@click.argument('lon', type=float)
@click.option('--radius', '-r', default=500.0, help='Radius in meters')
@click.option('--resolution', default='30', type=click.Choice(['30', '90']),
              help='Grid resolution in meters')
@click.option('--z-scale', default=1.0, help='Vertical exaggeration')
@click.option('--synthetic', is_flag=True, help='Generate synthetic terrain instead of downloading')
@click.option('--output', '-o', default='terrain.glb', help='Output file (.glb, .stl, .ply, .obj)')
def terrain(lat: float, lon: float, radius: float, resolution: str, z_scale: float,
            synthetic: bool, output: str):
    """Build a terrain mesh around LAT LON from elevation data."""
    builder = GeoDataBuilder()
    asyncio.run(async_terrain(builder, lat, lon, radius, int(resolution), z_scale, synthetic, output))


async def async_summary(builder: GeoDataBuilder, lat, lon, radius, types):
    try:
        dataset = await builder.download_all(lat, lon, radius, list(types) or None)
    except GeoDataError as e:
        logger.error(f"Error downloading data: {e}")
        raise click.ClickException(str(e))
    for warning in dataset.warnings:
        click.echo(f"⚠ {warning}")
    click.echo(dataset.summary())


async def async_build(builder: GeoDataBuilder, lat, lon, radius, output, types,
                      projection, height_scale, surfaces):
    """Async helper: download, synthesize and export."""
    def _progress(pct, msg):
        click.echo(f"[{pct:3.0f}%] {msg}")

    try:
        dataset = await builder.download_all(lat, lon, radius, list(types) or None)
        _progress(5, f"Downloaded {len(dataset.features)} features")
        layers = collect_layers(dataset, projection=projection, height_scale=height_scale,
                                surfaces=surfaces, progress_callback=_progress)
        path = export_layers(layers, output)
    except GeoDataError as e:
        logger.error(f"Error building model: {e}")
        raise click.ClickException(str(e))

    click.echo(f"\n{'='*50}")
    click.echo(f"Generated {len(layers)} layers:")
    for name, layer in layers.items():
        click.echo(f"  {name}: {len(layer.meshes)} meshes, {len(layer.curves)} curves")
    click.echo(f"\nOutput: {path}")
    click.echo(f"{'='*50}")


async def async_terrain(builder: GeoDataBuilder, lat, lon, radius, resolution, z_scale,
                        synthetic, output):
    try:
        grid = await builder.elevation(lat, lon, radius, resolution=resolution,
                                       z_scale=z_scale, synthetic=synthetic)
        width = grid.cols * grid.cell_size
        height = grid.rows * grid.cell_size
        mesh = terrain_mesh(grid.elevations, grid.cell_size, (-width / 2.0, -height / 2.0))
        path = export_layers({"terrain": Layer("terrain", meshes=[mesh])}, output)
    except GeoDataError as e:
        logger.error(f"Error building terrain: {e}")
        raise click.ClickException(str(e))

    click.echo(f"Grid: {grid.rows}×{grid.cols} cells at {grid.cell_size:.0f}m")
    click.echo(f"Elevation: {grid.min_elevation:.1f}m to {grid.max_elevation:.1f}m")
    if synthetic:
        click.echo("NOTE: synthetic terrain, not real elevation data")
    click.echo(f"Output: {path}")


if __name__ == '__main__':
    cli()
