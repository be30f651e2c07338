"""Kernel density surfaces over a two-dimensional environmental space."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple, Union
import logging
import math

import numpy as np
from scipy import ndimage

from ..errors import InvalidInputError

LOG = logging.getLogger(__name__)

DEFAULT_RESOLUTION = 100
DEFAULT_MARGIN = 0.05
MIN_BANDWIDTH_CELLS = 1.0
KERNEL_TRUNCATE = 4.0
_EXTENT_TOL = 1e-9

BandwidthRule = Callable[[np.ndarray], Tuple[float, float]]
Bandwidth = Union[str, float, Tuple[float, float], BandwidthRule]


@dataclass(frozen=True)
class EnvironmentalExtent:
	"""Regular R x R grid of cell centres spanning two environmental axes.

	Surfaces built on an extent are indexed ``[row, col]`` where rows follow
	the second axis (``y``) and columns the first axis (``x``).
	"""

	x_min: float
	x_max: float
	y_min: float
	y_max: float
	resolution: int = DEFAULT_RESOLUTION

	def __post_init__(self) -> None:
		if int(self.resolution) != self.resolution or self.resolution < 2:
			raise InvalidInputError(f"Grid resolution must be an integer >= 2, got {self.resolution}.")
		bounds = (self.x_min, self.x_max, self.y_min, self.y_max)
		if not all(math.isfinite(value) for value in bounds):
			raise InvalidInputError(f"Extent bounds must be finite: {bounds}")
		if self.x_max <= self.x_min or self.y_max <= self.y_min:
			raise InvalidInputError(f"Extent bounds are empty or inverted: {bounds}")

	@classmethod
	def from_points(
		cls,
		points: np.ndarray,
		resolution: int = DEFAULT_RESOLUTION,
		margin: float = DEFAULT_MARGIN,
	) -> "EnvironmentalExtent":
		"""Bounding extent of a background sample, padded by ``margin`` of each axis range."""
		values = as_coordinates(points)
		if values.shape[0] == 0:
			raise InvalidInputError("Cannot derive an environmental extent from an empty sample.")
		if margin < 0:
			raise InvalidInputError("Extent margin may not be negative.")

		mins = values.min(axis=0)
		maxs = values.max(axis=0)
		spans = maxs - mins
		pads = []
		for span, centre in zip(spans, (mins + maxs) / 2.0):
			if span > 0:
				pads.append(span * margin if margin > 0 else 0.0)
			else:
				# Constant axis: open a unit-wide window around the value.
				pads.append(max(abs(centre) * 0.05, 0.5))
		return cls(
			x_min=float(mins[0] - pads[0]),
			x_max=float(maxs[0] + pads[0]),
			y_min=float(mins[1] - pads[1]),
			y_max=float(maxs[1] + pads[1]),
			resolution=int(resolution),
		)

	@property
	def bounds(self) -> Tuple[float, float, float, float]:
		return self.x_min, self.x_max, self.y_min, self.y_max

	@property
	def shape(self) -> Tuple[int, int]:
		return self.resolution, self.resolution

	@property
	def x(self) -> np.ndarray:
		return np.linspace(self.x_min, self.x_max, self.resolution)

	@property
	def y(self) -> np.ndarray:
		return np.linspace(self.y_min, self.y_max, self.resolution)

	@property
	def cell_size(self) -> Tuple[float, float]:
		step = self.resolution - 1
		return (self.x_max - self.x_min) / step, (self.y_max - self.y_min) / step

	@property
	def x_edges(self) -> np.ndarray:
		dx = self.cell_size[0]
		return np.linspace(self.x_min - dx / 2.0, self.x_max + dx / 2.0, self.resolution + 1)

	@property
	def y_edges(self) -> np.ndarray:
		dy = self.cell_size[1]
		return np.linspace(self.y_min - dy / 2.0, self.y_max + dy / 2.0, self.resolution + 1)

	def cell_index(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
		"""Row and column of the cell nearest to each point, clamped to the grid."""
		values = as_coordinates(points)
		dx, dy = self.cell_size
		cols = np.rint((values[:, 0] - self.x_min) / dx).astype(int)
		rows = np.rint((values[:, 1] - self.y_min) / dy).astype(int)
		last = self.resolution - 1
		return np.clip(rows, 0, last), np.clip(cols, 0, last)

	def matches(self, other: "EnvironmentalExtent") -> bool:
		if self.resolution != other.resolution:
			return False
		tol = _EXTENT_TOL * max(self.x_max - self.x_min, self.y_max - self.y_min)
		return all(
			math.isclose(a, b, rel_tol=0.0, abs_tol=tol)
			for a, b in zip(self.bounds, other.bounds)
		)


def as_coordinates(points: np.ndarray) -> np.ndarray:
	values = np.asarray(points, dtype=float)
	if values.ndim != 2 or values.shape[1] != 2:
		raise InvalidInputError(f"Expected an (n, 2) coordinate array, got shape {values.shape}.")
	if not np.all(np.isfinite(values)):
		raise InvalidInputError("Coordinate array contains missing or infinite values.")
	return values


def scott_bandwidth(points: np.ndarray) -> Tuple[float, float]:
	"""Per-axis Scott's rule, sd * n^(-1/6) for two dimensions."""
	values = as_coordinates(points)
	n = values.shape[0]
	sd = values.std(axis=0, ddof=1) if n > 1 else np.zeros(2)
	factor = n ** (-1.0 / 6.0)
	return float(sd[0] * factor), float(sd[1] * factor)


def reference_bandwidth(points: np.ndarray) -> Tuple[float, float]:
	"""Common reference bandwidth (href) shared by both axes."""
	values = as_coordinates(points)
	n = values.shape[0]
	var = values.var(axis=0, ddof=1) if n > 1 else np.zeros(2)
	h = math.sqrt(0.5 * float(var.sum())) * n ** (-1.0 / 6.0)
	return h, h


BANDWIDTH_RULES: dict[str, BandwidthRule] = {
	"scott": scott_bandwidth,
	"href": reference_bandwidth,
}


def resolve_bandwidth(points: np.ndarray, bandwidth: Bandwidth = "scott") -> Tuple[float, float]:
	if isinstance(bandwidth, str):
		try:
			rule = BANDWIDTH_RULES[bandwidth.lower()]
		except KeyError as exc:
			known = ", ".join(sorted(BANDWIDTH_RULES))
			raise InvalidInputError(f"Unknown bandwidth rule '{bandwidth}' (expected one of: {known}).") from exc
		hx, hy = rule(points)
	elif callable(bandwidth):
		hx, hy = bandwidth(points)
	elif isinstance(bandwidth, (int, float)):
		hx = hy = float(bandwidth)
	else:
		hx, hy = (float(value) for value in bandwidth)

	if not (math.isfinite(hx) and math.isfinite(hy)) or hx < 0 or hy < 0:
		raise InvalidInputError(f"Bandwidth must be finite and non-negative, got ({hx}, {hy}).")
	return float(hx), float(hy)


def estimate_density(
	points: np.ndarray,
	extent: EnvironmentalExtent,
	bandwidth: Bandwidth = "scott",
) -> np.ndarray:
	"""Bivariate Gaussian kernel density of ``points`` on ``extent``, summing to 1.

	Points are binned onto the grid and convolved with a Gaussian kernel whose
	per-axis bandwidth comes from ``bandwidth``. Bandwidths narrower than
	``MIN_BANDWIDTH_CELLS`` grid cells are raised to that floor, so collinear
	or constant samples still yield a finite surface. Points outside the
	extent do not contribute; if none remain the surface is all zeros.
	"""
	values = as_coordinates(points)
	if values.shape[0] == 0:
		raise InvalidInputError("Cannot estimate a density from an empty sample.")

	hx, hy = resolve_bandwidth(values, bandwidth)
	dx, dy = extent.cell_size
	sigma_x = hx / dx
	sigma_y = hy / dy
	if sigma_x < MIN_BANDWIDTH_CELLS or sigma_y < MIN_BANDWIDTH_CELLS:
		LOG.debug(
			"Bandwidth (%.4g, %.4g) below %.1f cell(s); applying floor.",
			hx,
			hy,
			MIN_BANDWIDTH_CELLS,
		)
	sigma_x = max(sigma_x, MIN_BANDWIDTH_CELLS)
	sigma_y = max(sigma_y, MIN_BANDWIDTH_CELLS)

	counts, _, _ = np.histogram2d(
		values[:, 1],
		values[:, 0],
		bins=[extent.y_edges, extent.x_edges],
	)
	outside = values.shape[0] - int(counts.sum())
	if outside:
		LOG.warning("%d point(s) fall outside the environmental extent and were ignored.", outside)

	smoothed = ndimage.gaussian_filter(
		counts,
		sigma=(sigma_y, sigma_x),
		mode="constant",
		cval=0.0,
		truncate=KERNEL_TRUNCATE,
	)
	np.clip(smoothed, 0.0, None, out=smoothed)
	total = smoothed.sum()
	if total <= 0:
		LOG.warning("Density surface is empty; returning an all-zero grid.")
		return np.zeros(extent.shape, dtype=float)
	return smoothed / total
