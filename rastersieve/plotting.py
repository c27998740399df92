"""
Figures of classified rasters, band histograms and sieve results.
"""

import os
from typing import Dict, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import BoundaryNorm, ListedColormap
from matplotlib.patches import Patch

from rastersieve.cste import BandInfo
from rastersieve.thematic import ThematicClassBinder


def _save(fig: plt.Figure, save_path: Optional[str]) -> None:
    if save_path is None:
        return
    directory = os.path.dirname(save_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fig.savefig(save_path, dpi=150, bbox_inches='tight')


def plot_thematic(
    grid: np.ndarray,
    binder: ThematicClassBinder,
    title: str = "Land cover",
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot a classified raster with one color per class and a legend.

    Classes without a color in the binder get a color from the tab10 map;
    nodata cells are left blank.
    """
    codes = binder.codes
    if not codes:
        raise ValueError("Cannot plot a thematic raster with an empty lookup")
    fallback = plt.get_cmap('tab10')
    colors = []
    for i, code in enumerate(codes):
        if code in binder.colors:
            colors.append(np.asarray(binder.colors[code]) / 255.0)
        else:
            colors.append(fallback(i % 10))

    cmap = ListedColormap(colors)
    # One bin per code
    bounds = np.concatenate([np.asarray(codes) - 0.5, [codes[-1] + 0.5]])
    norm = BoundaryNorm(bounds, cmap.N)

    data = np.ma.masked_where(~np.isin(grid, codes), grid)

    fig, ax = plt.subplots(figsize=(8, 8))
    ax.imshow(data, cmap=cmap, norm=norm, interpolation='nearest')
    ax.set_title(title)
    ax.axis('off')
    handles = [
        Patch(facecolor=color, edgecolor='black', label=f"{code}: {binder.lookup[code]}")
        for code, color in zip(codes, colors)
    ]
    ax.legend(handles=handles, loc='lower right', fontsize='small')

    _save(fig, save_path)
    return fig


def plot_band_histograms(
    histograms: Dict[int, Tuple[np.ndarray, np.ndarray]],
    band_names: Optional[Dict[int, str]] = None,
    save_path: Optional[str] = None
) -> plt.Figure:
    """Plot the output of indices.band_histograms, one panel per band."""
    band_names = band_names or BandInfo.BAND_NAMES
    n = len(histograms)
    n_cols = min(n, 4) or 1
    n_rows = max(1, int(np.ceil(n / n_cols)))

    fig, axes = plt.subplots(n_rows, n_cols, figsize=(4 * n_cols, 3 * n_rows), squeeze=False)
    for ax, (band, (counts, edges)) in zip(axes.ravel(), sorted(histograms.items())):
        ax.stairs(counts, edges, fill=True)
        ax.set_title(band_names.get(band, f"band {band + 1}"))
        ax.set_xlabel("Reflectance")
    for ax in axes.ravel()[n:]:
        ax.axis('off')

    fig.tight_layout()
    _save(fig, save_path)
    return fig


def plot_sieve_comparison(
    before: np.ndarray,
    after: np.ndarray,
    titles: Sequence[str] = ("Before sieve", "After sieve"),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Show a mask before and after sieving, with removed cells in red."""
    before = np.asarray(before) > 0
    after = np.asarray(after) > 0

    fig, axes = plt.subplots(1, 3, figsize=(15, 5))
    axes[0].imshow(before, cmap='Greens', interpolation='nearest')
    axes[0].set_title(titles[0])
    axes[1].imshow(after, cmap='Greens', interpolation='nearest')
    axes[1].set_title(titles[1])
    axes[2].imshow(before & ~after, cmap='Reds', interpolation='nearest')
    axes[2].set_title(f"Removed ({int((before & ~after).sum())} cells)")
    for ax in axes:
        ax.axis('off')

    fig.tight_layout()
    _save(fig, save_path)
    return fig
