from .density import DEFAULT_RESOLUTION, EnvironmentalExtent, estimate_density
from .niche import NicheGrid, PointSet, build_niche_grid, quantile_threshold
from .overlap import OverlapStatistics, grid_overlap, niche_overlap
from .similarity_test import DEFAULT_NREPS, SCHEMES, SimilarityTestResult, niche_similarity_test, p_value
from .bg_test import BgTestResult, run_bg_test
