"""
Shared fixtures: synthetic environmental spaces and rasters.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_origin

from niche_similarity.ingest import EnvironmentStack, Species
from niche_similarity.process import EnvironmentalExtent, PointSet, build_niche_grid

COLUMNS = ("bio1", "bio12")
RASTER_SIZE = 60


def gaussian_points(rng, centre, n=300, scale=1.0, label="sp"):
    values = rng.normal(loc=centre, scale=scale, size=(n, 2))
    return PointSet(label=label, values=np.clip(values, 0.0, 10.0), columns=COLUMNS)


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture
def background(rng):
    return PointSet(label="background", values=rng.uniform(0.0, 10.0, size=(2000, 2)), columns=COLUMNS)


@pytest.fixture
def extent(background):
    return EnvironmentalExtent.from_points(background.values, resolution=50)


@pytest.fixture
def similar_niches(rng, background, extent):
    """Two species drawn from the same distribution."""
    sp1 = gaussian_points(rng, (5.0, 5.0), label="sp1")
    sp2 = gaussian_points(rng, (5.0, 5.0), label="sp2")
    return build_niche_grid(extent, background, sp1), build_niche_grid(extent, background, sp2)


@pytest.fixture
def disjoint_niches(rng, background, extent):
    """Two species in well separated corners of the environmental space."""
    sp1 = gaussian_points(rng, (2.0, 2.0), n=100, scale=0.5, label="sp1")
    sp2 = gaussian_points(rng, (8.0, 8.0), n=100, scale=0.5, label="sp2")
    return build_niche_grid(extent, background, sp1), build_niche_grid(extent, background, sp2)


def gradient_layers():
    """Two layers varying with column (temp) and row (precip)."""
    rows, cols = np.mgrid[0:RASTER_SIZE, 0:RASTER_SIZE]
    return {"temp": cols.astype(float), "precip": rows.astype(float) * 2.0}


@pytest.fixture
def env_stack():
    layers = gradient_layers()
    return EnvironmentStack(
        names=tuple(layers),
        data=np.stack(list(layers.values())),
        transform=from_origin(0.0, float(RASTER_SIZE), 1.0, 1.0),
    )


def cluster(rng, centre, n, spread=3.0):
    xy = rng.normal(loc=centre, scale=spread, size=(n, 2))
    xy = np.clip(xy, 0.5, RASTER_SIZE - 0.5)
    return pd.DataFrame({"x": xy[:, 0], "y": xy[:, 1]})


@pytest.fixture
def species_pair(rng):
    background = pd.DataFrame(
        {
            "x": rng.uniform(0.0, RASTER_SIZE, size=800),
            "y": rng.uniform(0.0, RASTER_SIZE, size=800),
        }
    )
    sp1 = Species(name="Anolis ahli", presence_points=cluster(rng, (15.0, 45.0), 60), background_points=background)
    sp2 = Species(name="Anolis allogus", presence_points=cluster(rng, (45.0, 15.0), 60), background_points=background.copy())
    return sp1, sp2


def write_raster(path, data, nodata=-9999.0):
    transform = from_origin(0.0, float(data.shape[0]), 1.0, 1.0)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        width=data.shape[1],
        height=data.shape[0],
        count=1,
        dtype="float32",
        crs="EPSG:4326",
        transform=transform,
        nodata=nodata,
    ) as dst:
        dst.write(np.where(np.isnan(data), nodata, data).astype("float32"), 1)
    return path


@pytest.fixture
def env_dir(tmp_path):
    directory = tmp_path / "env"
    directory.mkdir()
    for name, data in gradient_layers().items():
        data = data.copy()
        if name == "precip":
            data[0, 0] = np.nan
        write_raster(directory / f"{name}.tif", data)
    return directory
