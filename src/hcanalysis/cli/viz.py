from __future__ import annotations

import typer
from typing import Optional

from hcanalysis.vis.hdf import save_histogram_png, save_histogram_pngs

app = typer.Typer(help="Half-commissioning histogram visualization tools")


@app.command("h5-to-png")
def h5_to_png(
    h5_path: str = typer.Argument(..., help="Path to HDF5 file containing /histograms"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Histogram name (default: all non-empty)"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG (single) or directory (all)"),
):
    """Render stored histograms from HDF5 to PNG files."""
    if name is None:
        pngs = save_histogram_pngs(h5_path, out_dir=out)
        typer.echo(f"Wrote {len(pngs)} PNGs")
        return
    out_png = save_histogram_png(h5_path, name, out_png=out)
    typer.echo(f"Wrote {out_png}")


if __name__ == "__main__":
    app()
