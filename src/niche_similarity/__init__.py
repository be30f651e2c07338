"""Randomization tests of environmental niche similarity between two species."""
from .errors import GridMismatchError, InvalidInputError, ReplicateCountError
from .ingest import EnvironmentStack, Species, load_env_stack, load_species
from .process import (
	BgTestResult,
	EnvironmentalExtent,
	NicheGrid,
	OverlapStatistics,
	PointSet,
	SimilarityTestResult,
	build_niche_grid,
	niche_overlap,
	niche_similarity_test,
	run_bg_test,
)

__version__ = "0.1.0"
