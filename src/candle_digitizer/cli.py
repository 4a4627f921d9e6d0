"""CLI for extracting OHLC data from candlestick chart screenshots."""

import csv
import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from candle_digitizer import config
from candle_digitizer.models import (
    OcrTokens,
    OHLCCandle,
    PipelineConfig,
    PixelCoordinate,
    XLabelOptions,
)
from candle_digitizer.pipeline import run_pipeline

CSV_HEADER = ["timestamp_ISO", "open", "high", "low", "close", "confidence"]


def parse_corners(value: str | None) -> tuple[PixelCoordinate, PixelCoordinate, PixelCoordinate] | None:
    """Parse "x,y x,y x,y" (top-left, top-right, bottom-left)."""
    if value is None:
        return None
    parts = value.split()
    if len(parts) != 3:
        raise click.BadParameter("expected three corners: 'x,y x,y x,y'")
    corners = []
    for part in parts:
        try:
            x, y = (int(v) for v in part.split(","))
        except ValueError:
            raise click.BadParameter(f"bad corner {part!r}, expected 'x,y'") from None
        corners.append(PixelCoordinate(x=x, y=y))
    return corners[0], corners[1], corners[2]


def load_labels(path: Path) -> tuple[OcrTokens, XLabelOptions]:
    """Read OCR tokens (and optional X-label options) from a JSON file."""
    payload = json.loads(path.read_text())
    tokens = OcrTokens(y_axis=payload.get("y_axis", []), x_axis=payload.get("x_axis", []))
    options = XLabelOptions(**payload.get("x_label_options", {}))
    return tokens, options


def write_csv(candles: list[OHLCCandle], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for c in candles:
            writer.writerow([c.timestamp or "", c.open, c.high, c.low, c.close, c.confidence])


@click.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--labels",
    "labels_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with y_axis / x_axis OCR tokens",
)
@click.option(
    "--timeframe",
    required=True,
    type=click.Choice(sorted(config.TIMEFRAMES, key=config.TIMEFRAMES.get)),
    help="Candle timeframe",
)
@click.option("--anchor", help="ISO timestamp of the first candle")
@click.option("--corners", help="Manual plot corners 'x,y x,y x,y' (top-left, top-right, bottom-left)")
@click.option("--mask", "mask_path", type=click.Path(exists=True, path_type=Path), help="Segmentation mask PNG")
@click.option(
    "--max-workers",
    type=int,
    default=config.DEFAULT_MAX_WORKERS,
    help="Threads used for column extraction",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output JSON file")
@click.option("--csv", "csv_path", type=click.Path(path_type=Path), help="Also write candles as CSV")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def main(
    image: Path,
    labels_path: Path,
    timeframe: str,
    anchor: str | None,
    corners: str | None,
    mask_path: Path | None,
    max_workers: int,
    output: Path | None,
    csv_path: Path | None,
    verbose: bool,
) -> None:
    """Extract OHLC candles from a candlestick chart image."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    if max_workers < 1:
        click.echo("Error: --max-workers must be >= 1", err=True)
        sys.exit(1)

    try:
        tokens, x_options = load_labels(labels_path)
    except (json.JSONDecodeError, ValidationError) as e:
        click.echo(f"Error: invalid labels file {labels_path}: {e}", err=True)
        sys.exit(1)

    try:
        manual_corners = parse_corners(corners)
    except click.BadParameter as e:
        click.echo(f"Error: --corners: {e.message}", err=True)
        sys.exit(1)

    if verbose:
        click.echo(f"Processing: {image}")

    state = run_pipeline(
        str(image),
        tokens,
        timeframe,
        config=PipelineConfig(max_workers=max_workers),
        anchor_timestamp=anchor,
        manual_corners=manual_corners,
        x_label_options=x_options,
        segmentation_mask_path=str(mask_path) if mask_path else None,
    )

    for e in state.errors:
        click.echo(f"  [{e.stage.value}] {e.message}", err=True)

    if state.output is None:
        click.echo(f"Error processing {image}: no candles extracted", err=True)
        sys.exit(1)

    out_path = output or Path(f"{image.stem}.json")
    out_path.write_text(json.dumps(state.output.model_dump(mode="json"), indent=2))
    if csv_path:
        write_csv(state.output.candles, csv_path)

    for w in state.output.warnings:
        click.echo(f"  Warning: {w}", err=True)
    if verbose:
        click.echo(
            f"  Output: {out_path} ({len(state.output.candles)} candles, "
            f"confidence {state.output.confidence_score:.2f})"
        )


if __name__ == "__main__":
    main()
