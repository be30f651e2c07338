from .occurrences import COORDS, Species, load_species, read_points
from .enviro import (
	DEFAULT_BACKGROUND_POINTS,
	EnvironmentStack,
	extract_values,
	load_env_stack,
	raster_to_points,
	resolve_layers,
	sample_background,
)
