from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from ..process.bg_test import BgTestResult
from ..process.niche import NicheGrid

SURFACE_TITLES = {
	"availability": "{name} available environment",
	"raw_occurrence": "{name} occurrence in environment space",
	"corrected_occurrence": "{name} density in environment space, scaled by availability",
}


def plot_null_distribution(result: BgTestResult, statistic: str, output_path: Path) -> Path:
	"""Histogram of simulated overlaps with the observed value as a dashed line."""
	if statistic not in ("D", "I"):
		raise ValueError(f"Statistic must be 'D' or 'I', got '{statistic}'.")
	simulated = result.simulated_d if statistic == "D" else result.simulated_i
	observed = result.observed_d if statistic == "D" else result.observed_i

	fig, ax = plt.subplots(figsize=(6, 3))
	ax.hist(simulated, bins=np.linspace(0.0, 1.0, 41), density=True, alpha=0.5, edgecolor="black")
	ax.axvline(observed, color="black", linestyle="--", linewidth=1.5, label="observed")
	ax.set_xlim(0.0, 1.0)
	ax.set_xlabel(statistic)
	ax.set_ylabel("Density")
	ax.set_title(
		f"Ecospat background test: {result.species_names[0]} vs. {result.species_names[1]}"
	)
	ax.text(
		0.98,
		0.95,
		f"p = {result.p_values[statistic]:.3f}",
		transform=ax.transAxes,
		ha="right",
		va="top",
		bbox=dict(boxstyle="round,pad=0.3", facecolor="white", alpha=0.8),
	)
	ax.legend(loc="upper left")
	ax.grid(True, linestyle="--", alpha=0.3)

	output_path = Path(output_path)
	output_path.parent.mkdir(parents=True, exist_ok=True)
	fig.tight_layout()
	fig.savefig(output_path, dpi=300)
	plt.close(fig)
	return output_path


def _draw_surface(ax, niche: NicheGrid, surface: str, title: str) -> None:
	x_min, x_max, y_min, y_max = niche.bounds
	image = ax.imshow(
		niche.surface(surface),
		origin="lower",
		extent=(x_min, x_max, y_min, y_max),
		aspect="auto",
		cmap="inferno",
	)
	ax.set_title(title, fontsize=8)
	ax.set_xlabel(niche.occurrence.columns[0])
	ax.set_ylabel(niche.occurrence.columns[1])
	ax.figure.colorbar(image, ax=ax, label="Density")


def plot_niche_surfaces(result: BgTestResult, output_path: Path) -> Path:
	"""Availability, occurrence and corrected occurrence of both species side by side."""
	fig, axes = plt.subplots(3, 2, figsize=(10, 12))
	for col, (name, niche) in enumerate(
		zip(result.species_names, (result.sp1_niche, result.sp2_niche))
	):
		for row, surface in enumerate(SURFACE_TITLES):
			_draw_surface(axes[row, col], niche, surface, SURFACE_TITLES[surface].format(name=name))

	output_path = Path(output_path)
	output_path.parent.mkdir(parents=True, exist_ok=True)
	fig.tight_layout()
	fig.savefig(output_path, dpi=150)
	plt.close(fig)
	return output_path
