"""Typer-based CLI entry point."""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich import print
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .errors import LayerNotAttachedError, StyleLoadError, TileLoadingError, VectorTilesError
from .geometry import geometry_bbox
from .style_engine import StyleEngine, load_style_table
from .tile_source import open_source

app = typer.Typer(help="Preview and inspect vector tile layers")


def _handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (TileLoadingError, StyleLoadError, LayerNotAttachedError) as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1) from exc
        except VectorTilesError as exc:
            typer.echo(f"Unexpected error: {exc}", err=True)
            raise typer.Exit(1) from exc

    return wrapper


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _feature_id_getter(id_property: str):
    def get_feature_id(feature):
        properties = feature.get("properties") or {}
        if id_property in properties:
            return properties[id_property]
        return feature.get("id")

    return get_feature_id


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    """Configure logging for every command."""

    _configure_logging(verbose)


@app.command()
@_handle_errors
def inspect(
    source: str = typer.Argument(..., help="Tile directory or URL template"),
    z: int = typer.Argument(...),
    x: int = typer.Argument(...),
    y: int = typer.Argument(...),
    id_property: str = typer.Option("id", help="Property holding the feature id"),
    style: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Style table JSON"),
) -> None:
    """Load a single tile and list its features with their resolved styles."""

    tile_source = open_source(source)
    layers = tile_source.load_tile(z, x, y)
    if layers is None:
        print(f"[yellow]Tile {z}/{x}/{y} does not exist")
        return

    engine = StyleEngine(load_style_table(style) if style else None)
    get_feature_id = _feature_id_getter(id_property)

    table = Table(title=f"Tile {z}/{x}/{y}")
    table.add_column("Layer")
    table.add_column("Feature id")
    table.add_column("Geometry")
    table.add_column("Bounds (lon/lat)")
    table.add_column("Visible")
    table.add_column("Style")

    count = 0
    for layer in layers:
        for feature in layer.features:
            geometry = feature.get("geometry") or {}
            feature_id = get_feature_id(feature)
            resolution = engine.resolve(feature.get("properties"), feature_id)
            bbox = geometry_bbox(geometry)
            table.add_row(
                layer.name,
                str(feature_id),
                str(geometry.get("type")),
                ", ".join(f"{value:.5f}" for value in bbox) if bbox else "-",
                "yes" if resolution.visible else "no",
                ", ".join(f"{key}={value}" for key, value in sorted(resolution.style.items())),
            )
            count += 1

    Console().print(table)
    print(f"[green]{count} features in {len(layers)} layers")


@app.command()
@_handle_errors
def preview(
    source: str = typer.Argument(..., help="Tile directory or URL template"),
    id_property: str = typer.Option("id", help="Property holding the feature id"),
    style: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Style table JSON"),
    lat: float = typer.Option(0.0, help="Initial centre latitude"),
    lng: float = typer.Option(0.0, help="Initial centre longitude"),
    zoom: float = typer.Option(2.0, help="Initial zoom level"),
    debug: bool = typer.Option(False, "--debug", help="Outline tile boundaries"),
) -> None:
    """Open an interactive window showing the layer."""

    from PySide6.QtWidgets import QApplication

    from .preview import PreviewWindow

    qt_app = QApplication.instance() or QApplication(sys.argv)
    window = PreviewWindow(
        source,
        get_feature_id=_feature_id_getter(id_property),
        style=style,
        debug=debug,
    )
    window.map_widget.center_on(lat, lng, zoom)
    window.show()
    raise typer.Exit(qt_app.exec())


if __name__ == "__main__":  # pragma: no cover
    app()
