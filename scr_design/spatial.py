"""Spatial inputs: state-space pixels, candidate traps and distances.

Builds the two point sets the replication driver consumes:
  - StateSpace: regular grid of pixel centres covering the study area
    plus a buffer (the region where activity centres may lie)
  - TrapArray: a trap layout, either read from file or chosen as a
    subset of a candidate grid inside the study area

Core functions:
  - make_grid: regular rectangular grid of points
  - grid_in_polygon: grid points falling inside a shapely geometry
  - make_state_space: buffer the study area and grid it
  - make_candidate_traps / select_traps: candidate grid and a chosen subset
  - squared_distances / distances: pairwise distances (scipy cdist)
  - trim_mask: pixels within a distance of at least one trap
  - load_points_csv / save_points_csv / load_study_area: file I/O

Trap selection itself (e.g. a genetic-algorithm search over candidates)
happens outside this package; select_traps only applies its result.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence, Union

import numpy as np
import pandas as pd
import shapely
from scipy.spatial.distance import cdist
from shapely.geometry.base import BaseGeometry

from scr_design.errors import ConfigurationError
from scr_design.types import StateSpace, TrapArray


# ═══════════════════════════════════════════════════════════════════════
# GRIDS
# ═══════════════════════════════════════════════════════════════════════

def make_grid(xmin: float, xmax: float,
              ymin: float, ymax: float,
              spacing: float) -> np.ndarray:
    """Regular grid of points, endpoints included when aligned.

    Points are ordered row by row (x varies fastest), which fixes the
    pixel index used by the activity-centre sampler.

    Args:
        xmin, xmax, ymin, ymax: Grid extent.
        spacing: Distance between neighbouring points.

    Returns:
        (n, 2) array of (x, y) coordinates.
    """
    if spacing <= 0:
        raise ConfigurationError(f"grid spacing must be positive, got {spacing}")
    if xmax < xmin or ymax < ymin:
        raise ConfigurationError(
            f"invalid grid extent x=[{xmin}, {xmax}], y=[{ymin}, {ymax}]"
        )
    xs = np.arange(xmin, xmax + spacing * 0.5, spacing)
    ys = np.arange(ymin, ymax + spacing * 0.5, spacing)
    xx, yy = np.meshgrid(xs, ys)
    return np.column_stack([xx.ravel(), yy.ravel()])


def grid_in_polygon(geom: BaseGeometry, spacing: float) -> np.ndarray:
    """Pixel centres of a grid over geom's bounds that fall inside geom.

    The grid is anchored half a spacing inside the lower-left corner of
    the bounding box, so each point is the centre of a spacing × spacing
    cell.

    Returns:
        (n, 2) array; may be empty if geom is smaller than one cell.
    """
    minx, miny, maxx, maxy = geom.bounds
    half = spacing / 2.0
    pts = make_grid(minx + half, max(maxx - half, minx + half),
                    miny + half, max(maxy - half, miny + half), spacing)
    inside = shapely.contains_xy(geom, pts[:, 0], pts[:, 1])
    return pts[inside]


def make_state_space(study_area: BaseGeometry,
                     buffer: float,
                     spacing: float) -> StateSpace:
    """Buffer the study area and grid it into state-space pixels.

    Args:
        study_area: Polygon(s) delimiting the trapping region.
        buffer: Buffer distance added around the study area. Should be a
            few multiples of sigma so no activity centre near the edge of
            the trap array is truncated.
        spacing: Pixel side length.

    Returns:
        StateSpace with pixel_area = spacing².

    Raises:
        ConfigurationError: If the buffered area contains no pixel centre.
    """
    if buffer < 0:
        raise ConfigurationError(f"buffer must be >= 0, got {buffer}")
    region = study_area.buffer(buffer) if buffer > 0 else study_area
    pts = grid_in_polygon(region, spacing)
    if len(pts) == 0:
        raise ConfigurationError(
            f"state-space is empty: no {spacing}-spaced pixel centre lies "
            f"inside the buffered study area"
        )
    return StateSpace(pts, pixel_area=spacing ** 2)


def make_candidate_traps(study_area: BaseGeometry, spacing: float) -> TrapArray:
    """All candidate trap locations on a regular grid inside the study area."""
    pts = grid_in_polygon(study_area, spacing)
    if len(pts) == 0:
        raise ConfigurationError(
            f"no candidate trap locations at spacing {spacing} inside the study area"
        )
    return TrapArray(pts)


def select_traps(candidates: TrapArray, indices: Sequence[int]) -> TrapArray:
    """Subset the candidate grid to a chosen design.

    Raises:
        ConfigurationError: On duplicate or out-of-range indices.
    """
    idx = np.asarray(indices, dtype=np.int64)
    if idx.size == 0:
        raise ConfigurationError("a design needs at least one trap")
    if len(np.unique(idx)) != idx.size:
        raise ConfigurationError("design trap indices must be distinct")
    if idx.min() < 0 or idx.max() >= len(candidates):
        raise ConfigurationError(
            f"design trap indices must lie in [0, {len(candidates) - 1}]"
        )
    return TrapArray(candidates.coords[idx])


# ═══════════════════════════════════════════════════════════════════════
# DISTANCES
# ═══════════════════════════════════════════════════════════════════════

def squared_distances(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Pairwise squared Euclidean distances, shape (len(a), len(b)).

    Exactly zero for coincident points.
    """
    return cdist(np.asarray(a, dtype=np.float64),
                 np.asarray(b, dtype=np.float64),
                 metric='sqeuclidean')


def distances(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Pairwise Euclidean distances, shape (len(a), len(b))."""
    return cdist(np.asarray(a, dtype=np.float64),
                 np.asarray(b, dtype=np.float64))


def trim_mask(state_space: StateSpace, traps: TrapArray, trim: float) -> np.ndarray:
    """Boolean mask of pixels within `trim` of at least one trap."""
    if trim <= 0:
        raise ValueError(f"trim distance must be positive, got {trim}")
    nearest = distances(state_space.coords, traps.coords).min(axis=1)
    return nearest <= trim


# ═══════════════════════════════════════════════════════════════════════
# FILE I/O
# ═══════════════════════════════════════════════════════════════════════

def load_points_csv(path: Union[str, Path],
                    x_col: str = 'x', y_col: str = 'y') -> np.ndarray:
    """Read an (n, 2) coordinate array from a delimited text file.

    The delimiter is sniffed, so comma, tab and space separated files
    (as exported from GIS or R) all work.
    """
    df = pd.read_csv(path, sep=None, engine='python')
    missing = [c for c in (x_col, y_col) if c not in df.columns]
    if missing:
        raise ConfigurationError(
            f"{path}: missing coordinate column(s) {missing}; "
            f"found {list(df.columns)}"
        )
    return df[[x_col, y_col]].to_numpy(dtype=np.float64)


def save_points_csv(coords: np.ndarray, path: Union[str, Path]) -> None:
    """Write an (n, 2) coordinate array as CSV with x,y columns."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(np.asarray(coords), columns=['x', 'y']).to_csv(p, index=False)


def load_study_area(path: Union[str, Path]) -> BaseGeometry:
    """Read a vector file and dissolve its features into one geometry.

    Coordinates are used as stored; the layer should already be in a
    projected CRS whose units match sigma.
    """
    import geopandas as gpd

    gdf = gpd.read_file(path)
    if gdf.empty:
        raise ConfigurationError(f"{path}: no features in study-area layer")
    if gdf.crs is not None and gdf.crs.is_geographic:
        raise ConfigurationError(
            f"{path}: study area is in a geographic CRS ({gdf.crs}); "
            f"reproject to a projected CRS first"
        )
    return gdf.union_all()
