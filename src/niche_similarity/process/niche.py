"""Niche grids: availability, occurrence and availability-corrected occurrence surfaces."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from ..errors import InvalidInputError
from .density import Bandwidth, EnvironmentalExtent, as_coordinates, estimate_density

LOG = logging.getLogger(__name__)

MIN_POINTS = 2
SURFACES = ("availability", "raw_occurrence", "corrected_occurrence")

Thresholder = Callable[[np.ndarray, float, Optional[np.ndarray]], np.ndarray]


def _frozen(values: np.ndarray) -> np.ndarray:
	array = np.array(values, dtype=float, copy=True)
	array.setflags(write=False)
	return array


@dataclass(frozen=True, eq=False)
class PointSet:
	"""Labelled sample of coordinates in a two-dimensional environmental space."""

	label: str
	values: np.ndarray
	columns: Tuple[str, str]

	def __post_init__(self) -> None:
		if not isinstance(self.label, str) or not self.label:
			raise InvalidInputError("Point sets require a non-empty label.")
		if len(self.columns) != 2:
			raise InvalidInputError(f"Point sets span exactly two dimensions, got {list(self.columns)}.")
		object.__setattr__(self, "columns", tuple(str(column) for column in self.columns))
		object.__setattr__(self, "values", _frozen(as_coordinates(self.values)))

	@classmethod
	def from_frame(
		cls,
		frame: pd.DataFrame,
		label: str,
		columns: Optional[Sequence[str]] = None,
	) -> "PointSet":
		"""Build a point set from two numeric columns, dropping incomplete rows."""
		if not isinstance(frame, pd.DataFrame):
			raise InvalidInputError(f"{label}: expected a pandas DataFrame, got {type(frame).__name__}.")
		if columns is None:
			if frame.shape[1] != 2:
				raise InvalidInputError(
					f"{label}: specify the two columns to use (frame has {frame.shape[1]})."
				)
			columns = list(frame.columns)
		columns = list(columns)
		missing = [column for column in columns if column not in frame.columns]
		if missing:
			raise InvalidInputError(f"{label}: missing columns {', '.join(map(str, missing))}.")

		try:
			numeric = frame[columns].apply(pd.to_numeric, errors="raise").astype(float)
		except (TypeError, ValueError) as exc:
			raise InvalidInputError(f"{label}: coordinate columns must be numeric.") from exc
		numeric = numeric.replace([np.inf, -np.inf], np.nan)
		complete = numeric.dropna()
		dropped = len(numeric) - len(complete)
		if dropped:
			LOG.info("%s: dropped %d incomplete row(s).", label, dropped)
		return cls(label=label, values=complete.to_numpy(), columns=tuple(columns))

	def __len__(self) -> int:
		return int(self.values.shape[0])

	def to_frame(self) -> pd.DataFrame:
		frame = pd.DataFrame(self.values, columns=list(self.columns))
		frame.insert(0, "Species", self.label)
		return frame


def values_at(surface: np.ndarray, extent: EnvironmentalExtent, points: np.ndarray) -> np.ndarray:
	"""Surface values in the cells holding each point."""
	rows, cols = extent.cell_index(points)
	return np.asarray(surface)[rows, cols]


def quantile_threshold(
	surface: np.ndarray,
	quantile: float,
	reference: Optional[np.ndarray] = None,
) -> np.ndarray:
	"""Zero the cells of ``surface`` below a quantile of ``reference``.

	``reference`` holds the density values the cutoff is computed from,
	typically the surface sampled at the points it was estimated from. When
	omitted the positive cells of the surface are used. A quantile of 0
	leaves the surface untouched.
	"""
	if not 0.0 <= quantile <= 1.0:
		raise InvalidInputError(f"Threshold quantile must lie in [0, 1], got {quantile}.")
	result = np.array(surface, dtype=float, copy=True)
	if quantile == 0.0:
		return result
	pool = result[result > 0] if reference is None else np.asarray(reference, dtype=float)
	if pool.size == 0:
		return result
	cutoff = float(np.quantile(pool, quantile))
	result[result < cutoff] = 0.0
	return result


def normalize(surface: np.ndarray) -> np.ndarray:
	array = np.asarray(surface, dtype=float)
	total = array.sum()
	if total <= 0:
		return np.zeros_like(array)
	return array / total


def correct_for_availability(raw: np.ndarray, availability: np.ndarray) -> np.ndarray:
	"""Occurrence density divided by availability; unavailable cells are zero."""
	corrected = np.zeros_like(np.asarray(raw, dtype=float))
	np.divide(raw, availability, out=corrected, where=np.asarray(availability) > 0)
	return normalize(corrected)


def occurrence_surfaces(
	extent: EnvironmentalExtent,
	availability: np.ndarray,
	occurrence: np.ndarray,
	th_sp: float = 0.0,
	bandwidth: Bandwidth = "scott",
	thresholder: Thresholder = quantile_threshold,
) -> Tuple[np.ndarray, np.ndarray]:
	"""Raw and availability-corrected occurrence surfaces for one sample."""
	raw = estimate_density(occurrence, extent, bandwidth)
	raw = normalize(thresholder(raw, th_sp, values_at(raw, extent, occurrence)))
	return raw, correct_for_availability(raw, availability)


@dataclass(frozen=True, eq=False)
class NicheGrid:
	"""Three aligned density surfaces describing one species in environmental space."""

	extent: EnvironmentalExtent
	availability: np.ndarray
	raw_occurrence: np.ndarray
	corrected_occurrence: np.ndarray
	occurrence: PointSet
	background: PointSet
	th_sp: float = 0.0
	th_env: float = 0.0
	bandwidth: Bandwidth = "scott"
	thresholder: Thresholder = field(default=quantile_threshold, repr=False)

	def __post_init__(self) -> None:
		for name in SURFACES:
			array = getattr(self, name)
			if np.shape(array) != self.extent.shape:
				raise InvalidInputError(
					f"Surface '{name}' has shape {np.shape(array)}, expected {self.extent.shape}."
				)
			object.__setattr__(self, name, _frozen(array))

	@property
	def resolution(self) -> int:
		return self.extent.resolution

	@property
	def bounds(self) -> Tuple[float, float, float, float]:
		return self.extent.bounds

	def surface(self, name: str) -> np.ndarray:
		if name not in SURFACES:
			raise KeyError(f"Unknown surface '{name}' (expected one of: {', '.join(SURFACES)}).")
		return getattr(self, name)


def check_sample(points: PointSet, role: str) -> None:
	if not isinstance(points, PointSet):
		raise InvalidInputError(f"{role} sample must be a PointSet, got {type(points).__name__}.")
	if len(points) == 0:
		raise InvalidInputError(f"{role} sample '{points.label}' is empty after removing incomplete rows.")
	if len(points) < MIN_POINTS:
		raise InvalidInputError(
			f"{role} sample '{points.label}' has {len(points)} point(s); at least {MIN_POINTS} are required."
		)


def build_niche_grid(
	extent: EnvironmentalExtent,
	background: PointSet,
	occurrence: PointSet,
	th_sp: float = 0.0,
	th_env: float = 0.0,
	bandwidth: Bandwidth = "scott",
	thresholder: Thresholder = quantile_threshold,
) -> NicheGrid:
	"""Build a species' niche grid over a shared environmental extent.

	Parameters
	----------
	extent : EnvironmentalExtent
		Grid derived from the whole study-area background, shared by every
		species compared in one analysis.
	background : PointSet
		Environmental values available to the species.
	occurrence : PointSet
		Environmental values at the species' occurrence points.
	th_sp, th_env : float
		Quantiles of occurrence and availability density (sampled at the
		occurrence and background points) below which cells are set to zero.
	bandwidth : str, float, tuple or callable
		Kernel bandwidth rule passed to the density estimator.
	thresholder : callable
		Post-processing applied to each density surface.
	"""
	check_sample(occurrence, "Occurrence")
	check_sample(background, "Background")
	if occurrence.columns != background.columns:
		raise InvalidInputError(
			f"Occurrence columns {occurrence.columns} do not match background columns {background.columns}."
		)

	availability = estimate_density(background.values, extent, bandwidth)
	availability = normalize(
		thresholder(availability, th_env, values_at(availability, extent, background.values))
	)
	raw, corrected = occurrence_surfaces(
		extent,
		availability,
		occurrence.values,
		th_sp=th_sp,
		bandwidth=bandwidth,
		thresholder=thresholder,
	)
	if not corrected.any():
		LOG.warning("Corrected occurrence surface for '%s' is empty.", occurrence.label)

	return NicheGrid(
		extent=extent,
		availability=availability,
		raw_occurrence=raw,
		corrected_occurrence=corrected,
		occurrence=occurrence,
		background=background,
		th_sp=th_sp,
		th_env=th_env,
		bandwidth=bandwidth,
		thresholder=thresholder,
	)
