from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np
import pandas as pd
import rasterio
from affine import Affine
from rasterio.crs import CRS
from rasterio.errors import RasterioIOError

from ..errors import InvalidInputError
from .occurrences import COORDS

LOG = logging.getLogger(__name__)

DEFAULT_BACKGROUND_POINTS = 1000
_RASTER_EXTENSIONS = {".tif", ".tiff", ".asc"}
_TRANSFORM_TOL = 1e-6


@dataclass(frozen=True, eq=False)
class EnvironmentStack:
	"""Co-registered single-band environmental layers; nodata cells hold NaN."""

	names: Tuple[str, ...]
	data: np.ndarray
	transform: Affine
	crs: Optional[CRS] = None

	def __post_init__(self) -> None:
		data = np.asarray(self.data, dtype=float)
		if data.ndim != 3:
			raise ValueError(f"Layer data must be a (layers, rows, cols) array, got shape {data.shape}.")
		if data.shape[0] != len(self.names):
			raise ValueError(f"{len(self.names)} layer name(s) given for {data.shape[0]} layer(s).")
		if len(set(self.names)) != len(self.names):
			raise ValueError(f"Layer names must be unique: {list(self.names)}")
		object.__setattr__(self, "names", tuple(self.names))
		object.__setattr__(self, "data", data)

	@property
	def shape(self) -> Tuple[int, int]:
		return int(self.data.shape[1]), int(self.data.shape[2])

	def layer(self, name: str) -> np.ndarray:
		try:
			return self.data[self.names.index(name)]
		except ValueError as exc:
			raise InvalidInputError(
				f"Layer '{name}' not found (available: {', '.join(self.names)})."
			) from exc

	def valid_mask(self, layers: Optional[Sequence[str]] = None) -> np.ndarray:
		names = list(layers) if layers is not None else list(self.names)
		mask = np.ones(self.shape, dtype=bool)
		for name in names:
			mask &= np.isfinite(self.layer(name))
		return mask

	def cell_centres(self, rows: np.ndarray, cols: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
		xs, ys = self.transform @ (np.asarray(cols) + 0.5, np.asarray(rows) + 0.5)
		return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)


def _collect_rasters(env_dir: Path) -> List[Path]:
	paths = [
		p for p in env_dir.iterdir()
		if p.is_file() and p.suffix.lower() in _RASTER_EXTENSIONS
	]
	if not paths:
		raise ValueError(f"No raster layers (.tif/.asc) found in {env_dir}")
	return sorted(paths)


def _same_grid(reference: Affine, transform: Affine) -> bool:
	return all(
		math.isclose(a, b, abs_tol=_TRANSFORM_TOL)
		for a, b in zip(reference.to_gdal(), transform.to_gdal())
	)


def load_env_stack(source: Union[Path, str, Iterable[Path]]) -> EnvironmentStack:
	"""Read aligned single-band rasters into an EnvironmentStack.

	``source`` is either a directory of GeoTIFF / ASCII grids or an iterable of
	raster paths. Layer names are the file stems.
	"""
	if isinstance(source, (str, Path)):
		source = Path(source)
		if not source.exists():
			raise FileNotFoundError(f"Environment path not found: {source}")
		paths = _collect_rasters(source) if source.is_dir() else [source]
	else:
		paths = [Path(p) for p in source]
		if not paths:
			raise ValueError("No environmental layers were provided.")

	arrays: List[np.ndarray] = []
	transform: Optional[Affine] = None
	crs: Optional[CRS] = None
	shape: Optional[Tuple[int, int]] = None
	for path in paths:
		if not path.exists():
			raise FileNotFoundError(f"Environmental layer not found: {path}")
		LOG.info("Reading environmental layer %s.", path)
		try:
			with rasterio.open(path) as src:
				if src.count != 1:
					raise ValueError(f"Expected single-band raster, found {src.count} bands in {path}")
				band = src.read(1, masked=True).astype(float).filled(np.nan)
				src_transform = src.transform
				src_crs = src.crs
		except RasterioIOError as exc:
			raise ValueError(f"Unable to read raster {path}") from exc

		if transform is None:
			transform, crs, shape = src_transform, src_crs, band.shape
		elif band.shape != shape or not _same_grid(transform, src_transform):
			raise ValueError(f"Layer {path} is not aligned with {paths[0]}.")
		arrays.append(band)

	return EnvironmentStack(
		names=tuple(path.stem for path in paths),
		data=np.stack(arrays, axis=0),
		transform=transform,
		crs=crs,
	)


def resolve_layers(stack: EnvironmentStack, layers: Optional[Sequence[str]] = None) -> Tuple[str, str]:
	"""Pick the two layers defining the environmental space."""
	if layers is None:
		if len(stack.names) != 2:
			raise InvalidInputError(
				"Provide either a stack with exactly two layers or the names of two layers to use."
			)
		layers = stack.names
	layers = tuple(layers)
	if len(layers) != 2:
		raise InvalidInputError(f"Exactly two layers are required for overlaps, got {list(layers)}.")
	if layers[0] == layers[1]:
		raise InvalidInputError(f"The two layers must differ, got '{layers[0]}' twice.")
	for name in layers:
		stack.layer(name)
	return layers[0], layers[1]


def extract_values(
	stack: EnvironmentStack,
	points: pd.DataFrame,
	layers: Sequence[str],
) -> pd.DataFrame:
	"""Layer values at each coordinate; points off the raster get NaN."""
	x_column, y_column = COORDS
	xs = points[x_column].to_numpy(dtype=float)
	ys = points[y_column].to_numpy(dtype=float)
	cols_f, rows_f = ~stack.transform @ (xs, ys)
	rows_f = np.asarray(rows_f, dtype=float)
	cols_f = np.asarray(cols_f, dtype=float)
	n_rows, n_cols = stack.shape
	inside = (
		np.isfinite(rows_f) & np.isfinite(cols_f)
		& (rows_f >= 0) & (rows_f < n_rows)
		& (cols_f >= 0) & (cols_f < n_cols)
	)
	rows = np.floor(np.where(inside, rows_f, 0)).astype(int)
	cols = np.floor(np.where(inside, cols_f, 0)).astype(int)

	extracted = {}
	for name in layers:
		values = stack.layer(name)[rows, cols]
		extracted[name] = np.where(inside, values, np.nan)
	outside = int((~inside).sum())
	if outside:
		LOG.warning("%d point(s) fall outside the environmental rasters.", outside)
	return pd.DataFrame(extracted, index=points.index)


def raster_to_points(stack: EnvironmentStack, layers: Sequence[str]) -> pd.DataFrame:
	"""Coordinates and layer values of every cell valid in all ``layers``."""
	rows, cols = np.nonzero(stack.valid_mask(layers))
	xs, ys = stack.cell_centres(rows, cols)
	frame = pd.DataFrame({COORDS[0]: xs, COORDS[1]: ys})
	for name in layers:
		frame[name] = stack.layer(name)[rows, cols]
	return frame


def sample_background(
	stack: EnvironmentStack,
	n: int = DEFAULT_BACKGROUND_POINTS,
	seed: Optional[int] = None,
	layers: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
	"""Draw up to ``n`` distinct valid cells uniformly as background coordinates."""
	if n < 1:
		raise InvalidInputError(f"Background sample size must be positive, got {n}.")
	rows, cols = np.nonzero(stack.valid_mask(layers))
	if rows.size == 0:
		raise InvalidInputError("Environmental layers have no valid cells to sample.")
	if rows.size < n:
		LOG.warning("Only %d valid cell(s) available; sampling all of them.", rows.size)
	rng = np.random.default_rng(seed)
	picks = rng.choice(rows.size, size=min(n, rows.size), replace=False)
	xs, ys = stack.cell_centres(rows[picks], cols[picks])
	return pd.DataFrame({COORDS[0]: xs, COORDS[1]: ys})
