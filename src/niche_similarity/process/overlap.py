from __future__ import annotations

from dataclasses import dataclass
from typing import Dict
import logging

import numpy as np

from ..errors import GridMismatchError
from .niche import NicheGrid, normalize

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlapStatistics:
	"""Schoener's D and the Hellinger-based I between two surfaces."""

	D: float
	I: float

	def as_dict(self) -> Dict[str, float]:
		return {"D": self.D, "I": self.I}


def schoeners_d(dist1: np.ndarray, dist2: np.ndarray) -> float:
	if dist1.size != dist2.size:
		raise GridMismatchError("Distribution sizes do not match for Schoener's D.")
	# 1 - sum|p-q|/2 on normalized inputs; exact zero for disjoint support
	value = np.minimum(dist1, dist2).sum()
	return float(min(max(value, 0.0), 1.0))


def hellinger_i(dist1: np.ndarray, dist2: np.ndarray) -> float:
	if dist1.size != dist2.size:
		raise GridMismatchError("Distribution sizes do not match for Hellinger's I.")
	value = np.sqrt(dist1 * dist2).sum()
	return float(min(max(value, 0.0), 1.0))


def niche_overlap(surface1: np.ndarray, surface2: np.ndarray) -> OverlapStatistics:
	"""D and I between two surfaces on the same grid.

	Each surface is renormalized to sum to 1. An all-zero surface shares no
	mass with anything, so it overlaps nothing (D = I = 0).
	"""
	surface1 = np.asarray(surface1, dtype=float)
	surface2 = np.asarray(surface2, dtype=float)
	if surface1.shape != surface2.shape:
		raise GridMismatchError(f"Surface shapes differ: {surface1.shape} vs {surface2.shape}.")

	dist1 = normalize(np.where(np.isfinite(surface1), surface1, 0.0))
	dist2 = normalize(np.where(np.isfinite(surface2), surface2, 0.0))
	if not dist1.any() or not dist2.any():
		LOG.warning("Overlap requested for an empty surface; reporting zero overlap.")
		return OverlapStatistics(D=0.0, I=0.0)
	return OverlapStatistics(D=schoeners_d(dist1, dist2), I=hellinger_i(dist1, dist2))


def check_aligned(niche1: NicheGrid, niche2: NicheGrid) -> None:
	if not niche1.extent.matches(niche2.extent):
		raise GridMismatchError(
			"Niche grids were built on different extents or resolutions: "
			f"{niche1.extent} vs {niche2.extent}."
		)


def grid_overlap(niche1: NicheGrid, niche2: NicheGrid) -> OverlapStatistics:
	"""Overlap between the corrected occurrence surfaces of two niche grids."""
	check_aligned(niche1, niche2)
	return niche_overlap(niche1.corrected_occurrence, niche2.corrected_occurrence)
