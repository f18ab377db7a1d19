"""Matplotlib rendering of a completion chain.

Figures use a dark theme consistent with the terminal output.
"""

from __future__ import annotations

import io
from datetime import date
from pathlib import Path
from typing import Optional

import matplotlib
matplotlib.use("Agg")  # non-interactive backend -- render to image buffers
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure
from PIL import Image

from chains.display import short_day_label
from chains.ledger import is_next_day
from chains.models import DayMarker

# -- Palette -------------------------------------------------------------
_BG = "#2b2b2b"
_FG = "#e0e0e0"
_DONE = "#6ab58a"
_MISSED = "#555555"

_CELL = 0.6  # inches per day


def _fig_to_pil(fig: Figure, dpi: int = 100) -> Image.Image:
    """Render a matplotlib Figure to a PIL Image and close it."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=dpi, bbox_inches="tight",
                facecolor=fig.get_facecolor(), edgecolor="none")
    plt.close(fig)
    buf.seek(0)
    return Image.open(buf)


def chain_image(
    markers: list[DayMarker],
    *,
    title: str = "Streak",
    today: Optional[date] = None,
    dpi: int = 100,
) -> Image.Image:
    """Draw one circle per day, filled when done, linked across consecutive done days."""
    xs = np.arange(len(markers))
    fig_w = max(len(markers) * _CELL, 2.0)
    fig = Figure(figsize=(fig_w, 1.4), dpi=dpi, facecolor=_BG)
    ax = fig.add_subplot(111)
    ax.set_facecolor(_BG)

    for i in range(1, len(markers)):
        prev, cur = markers[i - 1], markers[i]
        if prev.done and cur.done and is_next_day(prev.day, cur.day):
            ax.plot(xs[i - 1:i + 1], [0, 0], color=_DONE, linewidth=3, zorder=1)

    done = np.array([m.done for m in markers], dtype=bool)
    ax.scatter(xs[done], np.zeros(done.sum()), s=260, color=_DONE, zorder=2)
    ax.scatter(xs[~done], np.zeros((~done).sum()), s=260, facecolors="none",
               edgecolors=_MISSED, linewidths=2, zorder=2)

    ax.set_xticks(xs)
    ax.set_xticklabels([short_day_label(m.day, today) for m in markers],
                       color=_FG, fontsize=8)
    ax.set_yticks([])
    ax.set_xlim(-0.6, max(len(markers) - 0.4, 0.6))
    for spine in ax.spines.values():
        spine.set_visible(False)
    ax.tick_params(length=0)
    ax.set_title(title, color=_FG, fontsize=11, fontweight="bold")

    return _fig_to_pil(fig, dpi=dpi)


def save_chain(
    markers: list[DayMarker],
    path: Path,
    *,
    title: str = "Streak",
    today: Optional[date] = None,
) -> Path:
    """Render the chain and write it as a PNG."""
    path.parent.mkdir(parents=True, exist_ok=True)
    chain_image(markers, title=title, today=today).save(path, format="PNG")
    return path
