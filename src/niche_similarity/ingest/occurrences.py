from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, cast
import logging

import geopandas as gpd
import pandas as pd

from ..errors import InvalidInputError

LOG = logging.getLogger(__name__)

COORDS: Tuple[str, str] = ("x", "y")
_TABLE_SUFFIXES = {".csv", ".txt"}
_X_CANDIDATES = ("x", "lon", "longitude", "long", "decimallongitude", "wgs84_e")
_Y_CANDIDATES = ("y", "lat", "latitude", "decimallatitude", "wgs84_n")


@dataclass(eq=False)
class Species:
	"""A named species with presence and background coordinates (columns ``x``, ``y``)."""

	name: str
	presence_points: pd.DataFrame
	background_points: Optional[pd.DataFrame] = None

	def validate(self, label: str = "Species") -> None:
		if not isinstance(self.name, str) or not self.name.strip():
			raise InvalidInputError(f"{label} does not have a species name set.")
		for role, points in (("presence", self.presence_points), ("background", self.background_points)):
			if points is None:
				raise InvalidInputError(f"{label} ({self.name}) has no {role} points.")
			if not isinstance(points, pd.DataFrame):
				raise InvalidInputError(
					f"{label} ({self.name}) {role} points are not a DataFrame ({type(points).__name__})."
				)
			if points.empty:
				raise InvalidInputError(f"{label} ({self.name}) has an empty {role} point table.")
			missing = [column for column in COORDS if column not in points.columns]
			if missing:
				raise InvalidInputError(
					f"{label} ({self.name}) {role} points lack coordinate column(s): {', '.join(missing)}."
				)


def _pick_column(columns: Sequence[str], candidates: Sequence[str], explicit: Optional[str]) -> str:
	if explicit is not None:
		if explicit not in columns:
			raise ValueError(f"Coordinate column '{explicit}' not found (columns: {', '.join(columns)}).")
		return explicit
	lookup = {str(column).lower(): column for column in columns}
	for candidate in candidates:
		if candidate in lookup:
			return lookup[candidate]
	raise ValueError(f"No coordinate column found among {', '.join(map(str, columns))}.")


def _coerce_coords(x_values: pd.Series, y_values: pd.Series) -> pd.DataFrame:
	try:
		x_series = cast(pd.Series, pd.to_numeric(x_values, errors="raise")).astype(float)
		y_series = cast(pd.Series, pd.to_numeric(y_values, errors="raise")).astype(float)
	except (TypeError, ValueError) as exc:
		raise ValueError("Coordinate columns must contain numeric values.") from exc
	frame = pd.DataFrame({COORDS[0]: x_series.to_numpy(), COORDS[1]: y_series.to_numpy()})
	incomplete = frame.isna().any(axis=1)
	if incomplete.any():
		LOG.warning("Dropping %d point(s) with missing coordinates.", int(incomplete.sum()))
		frame = frame[~incomplete].reset_index(drop=True)
	return frame


def read_points(
	path: Path,
	x_column: Optional[str] = None,
	y_column: Optional[str] = None,
) -> pd.DataFrame:
	"""Read point coordinates from a CSV table or a vector dataset (GPKG, SHP, ...)."""
	path = Path(path)
	if not path.exists():
		raise FileNotFoundError(f"Point data not found: {path}")
	if not path.is_file():
		raise ValueError(f"Point data path is not a file: {path}")

	if path.suffix.lower() in _TABLE_SUFFIXES:
		table = pd.read_csv(path)
		x_name = _pick_column(list(table.columns), _X_CANDIDATES, x_column)
		y_name = _pick_column(list(table.columns), _Y_CANDIDATES, y_column)
		return _coerce_coords(table[x_name], table[y_name])

	try:
		gdf = gpd.read_file(path)
	except Exception as exc:  # pragma: no cover - geopandas internal errors
		raise RuntimeError(f"Failed to read vector dataset: {path}") from exc

	if x_column is not None or y_column is not None:
		x_name = _pick_column(list(gdf.columns), _X_CANDIDATES, x_column)
		y_name = _pick_column(list(gdf.columns), _Y_CANDIDATES, y_column)
		return _coerce_coords(gdf[x_name], gdf[y_name])

	geom_types = set(gdf.geometry.geom_type.dropna().unique())
	if not geom_types <= {"Point"}:
		raise ValueError(f"Expected point geometries in {path}, found {', '.join(sorted(geom_types))}.")
	return _coerce_coords(gdf.geometry.x, gdf.geometry.y)


def load_species(
	presence_path: Path,
	name: Optional[str] = None,
	background_path: Optional[Path] = None,
	x_column: Optional[str] = None,
	y_column: Optional[str] = None,
) -> Species:
	"""Load a species from point files; the name defaults to the presence file stem."""
	presence_path = Path(presence_path)
	species_name = name or presence_path.stem
	LOG.info("Loading presence points for %s from %s.", species_name, presence_path)
	presence = read_points(presence_path, x_column, y_column)

	background = None
	if background_path is not None:
		LOG.info("Loading background points for %s from %s.", species_name, background_path)
		background = read_points(Path(background_path), x_column, y_column)

	return Species(name=species_name, presence_points=presence, background_points=background)
