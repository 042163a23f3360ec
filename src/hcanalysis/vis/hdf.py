import h5py
import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from pathlib import Path


def save_histogram_png(h5_path: str, name: str, out_png: str | None = None, group: str = "histograms"):
    """Render one stored histogram (/histograms/<name>) to a PNG."""
    h5_path = str(h5_path)
    with h5py.File(h5_path, "r") as f:
        if group not in f or name not in f[group]:
            raise KeyError(f"/{group}/{name} not found in {h5_path}")
        g = f[group][name]
        kind = g.attrs["kind"]
        title = g.attrs.get("title", name)
        counts = np.array(g["counts"])
        if kind == "1d":
            edges = np.array(g["edges"])
        else:
            x_edges = np.array(g["x_edges"])
            y_edges = np.array(g["y_edges"])

    if out_png is None:
        out_png = str(Path(h5_path).with_name(f"{Path(h5_path).stem}_{name}.png"))

    plt.figure()
    if kind == "1d":
        plt.stairs(counts, edges)
        plt.ylabel("entries")
    else:
        plt.pcolormesh(x_edges, y_edges, counts.T)
        plt.colorbar()
    plt.title(f"{name} : {title}")
    plt.tight_layout()
    plt.savefig(out_png, dpi=150)
    plt.close()
    return out_png


def save_histogram_pngs(h5_path: str, out_dir: str | None = None, group: str = "histograms") -> list[str]:
    """Render every non-empty histogram of the file; returns written paths."""
    h5_path = str(h5_path)
    base = Path(out_dir) if out_dir else Path(h5_path).parent
    base.mkdir(parents=True, exist_ok=True)
    with h5py.File(h5_path, "r") as f:
        names = [n for n in f[group] if int(f[group][n].attrs.get("entries", 0)) > 0]
    return [save_histogram_png(h5_path, n, out_png=str(base / f"{n}.png"), group=group) for n in names]
