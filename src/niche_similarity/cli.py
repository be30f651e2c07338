from __future__ import annotations

import logging
import argparse
from pathlib import Path
from typing import Optional

from .errors import GridMismatchError, InvalidInputError, ReplicateCountError
from .ingest import DEFAULT_BACKGROUND_POINTS, load_env_stack, load_species, sample_background
from .process import DEFAULT_NREPS, DEFAULT_RESOLUTION, SCHEMES, run_bg_test
from .report import format_summary, plot_niche_surfaces, plot_null_distribution, write_result_workbook

LOG = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(
		prog="niche-similarity",
		description="Background test of environmental niche similarity between two species",
	)
	p.add_argument("--species1", type=str, required=True, help="Presence points of species 1 (CSV, GPKG, SHP)")
	p.add_argument("--species2", type=str, required=True, help="Presence points of species 2 (CSV, GPKG, SHP)")
	p.add_argument("--name1", type=str, default=None, help="Name of species 1 (default: file stem)")
	p.add_argument("--name2", type=str, default=None, help="Name of species 2 (default: file stem)")
	p.add_argument("--bg1", type=str, default=None, help="Background points of species 1 (default: sampled from rasters)")
	p.add_argument("--bg2", type=str, default=None, help="Background points of species 2 (default: sampled from rasters)")
	p.add_argument("--n_background", type=int, default=DEFAULT_BACKGROUND_POINTS, help="Background points sampled per species when none are given")
	p.add_argument("--env", type=str, required=True, help="Directory (or single file) of environmental rasters")
	p.add_argument("--layers", nargs=2, metavar=("LAYER1", "LAYER2"), default=None, help="Two layer names (file stems) spanning the environmental space")
	p.add_argument("--output", type=str, required=True, help="Output directory")
	p.add_argument("--nreps", type=int, default=DEFAULT_NREPS, help="Number of randomization replicates")
	p.add_argument("--test_type", choices=("asymmetric", "symmetric"), default="asymmetric")
	p.add_argument("--alternative", choices=("greater", "lower"), default="greater", help="Test for more similar (greater) or more divergent (lower) niches than random")
	p.add_argument("--scheme", choices=sorted(SCHEMES), default="availability", help="How niches are relocated within the background")
	p.add_argument("--th_sp", type=float, default=0.0, help="Quantile threshold on species density")
	p.add_argument("--th_env", type=float, default=0.0, help="Quantile threshold on environment density")
	p.add_argument("--resolution", type=int, default=DEFAULT_RESOLUTION, help="Side length R of the environmental grid")
	p.add_argument("--bandwidth", type=str, default="scott", help="Bandwidth rule (scott, href) or a fixed bandwidth")
	p.add_argument("--seed", type=int, default=None, help="Random seed (default: unseeded)")
	p.add_argument("--workers", type=int, default=1, help="Processes used for replicates")
	return p


def _ensure_dir(p: Path) -> Path:
	path = Path(p)
	path.mkdir(parents=True, exist_ok=True)
	return path


def _parse_bandwidth(value: str):
	try:
		return float(value)
	except ValueError:
		return value


def _offset_seed(seed: Optional[int], offset: int) -> Optional[int]:
	return None if seed is None else seed + offset


def main(argv: Optional[list[str]] = None) -> int:

	logging.basicConfig(
		level=logging.INFO,
		format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		force=True,
	)

	ns = _build_parser().parse_args(argv)
	out_dir = _ensure_dir(Path(ns.output))

	try:
		env = load_env_stack(Path(ns.env))
		species = []
		for index, (presence, name, background) in enumerate(
			((ns.species1, ns.name1, ns.bg1), (ns.species2, ns.name2, ns.bg2)), start=1
		):
			record = load_species(Path(presence), name=name, background_path=background)
			if record.background_points is None:
				LOG.info("Sampling %d background points for %s.", ns.n_background, record.name)
				record.background_points = sample_background(
					env, ns.n_background, seed=_offset_seed(ns.seed, index), layers=ns.layers
				)
			species.append(record)

		result = run_bg_test(
			species[0],
			species[1],
			env,
			nreps=ns.nreps,
			layers=ns.layers,
			test_type=ns.test_type,
			th_sp=ns.th_sp,
			th_env=ns.th_env,
			resolution=ns.resolution,
			alternative=ns.alternative,
			scheme=ns.scheme,
			bandwidth=_parse_bandwidth(ns.bandwidth),
			seed=ns.seed,
			workers=ns.workers,
		)
	except (InvalidInputError, ReplicateCountError, GridMismatchError, FileNotFoundError) as exc:
		raise SystemExit(f"[error] {exc}") from exc

	print(format_summary(result))
	workbook = write_result_workbook(result, out_dir / "bg_test.xlsx")
	LOG.info("Saved %s", workbook)
	for statistic in ("D", "I"):
		path = plot_null_distribution(result, statistic, out_dir / f"null_{statistic}.png")
		LOG.info("Saved %s", path)
	path = plot_niche_surfaces(result, out_dir / "niche_surfaces.png")
	LOG.info("Saved %s", path)

	return 0

if __name__ == "__main__":
	raise SystemExit(main())
