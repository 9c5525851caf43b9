"""Calibration accuracy figures (headless, Agg)."""
from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .error_metrics import PointError, error_distances, summarize_errors


def _draw_targets(ax, errors: Sequence[PointError], screen_size: Tuple[int, int]) -> None:
    if errors:
        targets = np.array([e.true_xy for e in errors], dtype=float)
        preds = np.array([e.pred_xy for e in errors], dtype=float)
        # one miss segment per sample, target to prediction
        ax.plot(
            np.stack([targets[:, 0], preds[:, 0]]),
            np.stack([targets[:, 1], preds[:, 1]]),
            color="orange",
            linewidth=1,
        )
        ax.scatter(targets[:, 0], targets[:, 1], marker="+", s=80, c="green", label="calibration target")
        ax.scatter(preds[:, 0], preds[:, 1], s=16, c="red", label="mapped gaze")
        ax.legend(loc="upper right", fontsize="small")
    ax.set_xlim(0, screen_size[0])
    ax.set_ylim(screen_size[1], 0)
    ax.set_aspect("equal", adjustable="box")
    ax.set_title("Targets vs mapped gaze")


def _draw_distances(ax, dists: np.ndarray, within_px: float) -> None:
    top = max(1.0, float(within_px) * 2.0, float(dists.max()) if dists.size else 0.0)
    ax.hist(dists, bins=np.linspace(0.0, top, 21), color="slategray", edgecolor="white")
    ax.axvline(within_px, color="red", linestyle=":", label=f"{within_px:.0f} px")
    ax.set_xlabel("miss (px)")
    ax.set_ylabel("samples")
    ax.legend(loc="upper right", fontsize="small")


def fig_scatter(errors: Sequence[PointError], screen_size: Tuple[int, int]):
    fig, ax = plt.subplots(figsize=(6, 4))
    _draw_targets(ax, errors, screen_size)
    fig.tight_layout()
    return fig


def fig_histogram(errors: Sequence[PointError], within_px: float = 50.0):
    fig, ax = plt.subplots(figsize=(6, 4))
    _draw_distances(ax, error_distances(errors), within_px)
    fig.tight_layout()
    return fig


def save_report(errors: Sequence[PointError], screen_size: Tuple[int, int], path: str, within_px: float = 50.0) -> None:
    """Write both panels to one PNG, captioned with the error summary."""
    fig, (ax_t, ax_d) = plt.subplots(1, 2, figsize=(11, 4))
    _draw_targets(ax_t, errors, screen_size)
    _draw_distances(ax_d, error_distances(errors), within_px)
    fig.suptitle(summarize_errors(errors, within_px).caption())
    fig.tight_layout()
    try:
        fig.savefig(path)
    finally:
        plt.close(fig)
