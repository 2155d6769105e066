"""Gene block normalization.

A materialized gene block goes through a fixed sequence of total transforms
before regression:

1. Row-count check against the cohort
2. Removal of identifier columns (eid, IID)
3. Mean imputation of missing calls
4. Minimum column-sum filter (minor-allele-count proxy)
5. Column standardization (zero mean, unit sample variance)

The result is a float64 array with one row per individual and one column per
retained rare variant. A block with no retained columns has shape (n, 0).
"""

from __future__ import annotations

import numpy as np
from loguru import logger

from rarity.io.matrix import IDENTIFIER_COLUMNS, LabeledMatrix

# Relative tolerance below which a column's standard deviation counts as zero
_CONSTANT_RTOL = 1e-12


class BlockError(Exception):
    """A gene block cannot be processed; the block yields no results."""


class BlockRowCountError(BlockError):
    """A block's row count differs from the cohort size."""

    def __init__(self, expected: int, found: int) -> None:
        super().__init__(
            f"block has {found} rows but the cohort has {expected} individuals"
        )
        self.expected = expected
        self.found = found


def strip_identifier_columns(matrix: LabeledMatrix) -> list[str]:
    """Remove eid/IID columns in place. Returns the names removed."""
    return [name for name in IDENTIFIER_COLUMNS if matrix.remove_column_if_exists(name)]


def impute_nan_to_mean(data: np.ndarray) -> np.ndarray:
    """Replace NaN cells with the mean of the non-NaN values in their column.

    All-NaN columns become all zero.

    Args:
        data: Matrix (n_individuals, n_columns), possibly containing NaN.

    Returns:
        New array without NaN.
    """
    missing = np.isnan(data)
    if not missing.any():
        return data.copy()
    with np.errstate(invalid="ignore"):
        col_means = np.nanmean(np.where(missing.all(axis=0), 0.0, data), axis=0)
    col_means = np.nan_to_num(col_means, nan=0.0)
    return np.where(missing, col_means[np.newaxis, :], data)


def filter_min_sum(data: np.ndarray, min_sum: float) -> tuple[np.ndarray, np.ndarray]:
    """Drop columns whose sum is strictly below min_sum.

    A column summing to exactly min_sum is kept.

    Returns:
        Tuple of (filtered data, boolean keep mask over the input columns).
    """
    keep = data.sum(axis=0) >= min_sum
    return data[:, keep], keep


def standardize_columns(
    data: np.ndarray, drop_constant: bool = True
) -> tuple[np.ndarray, np.ndarray]:
    """Standardize columns to zero mean and unit sample variance (ddof=1).

    Args:
        data: Matrix without NaN.
        drop_constant: If True, zero-variance columns are removed. If False,
            they are centered only and left all-zero.

    Returns:
        Tuple of (standardized data, boolean mask of non-constant input columns).
    """
    n = data.shape[0]
    means = data.mean(axis=0) if n > 0 else np.zeros(data.shape[1])
    with np.errstate(invalid="ignore", divide="ignore"):
        stds = data.std(axis=0, ddof=1) if n > 1 else np.zeros(data.shape[1])
    stds = np.nan_to_num(stds, nan=0.0)
    varying = stds > _CONSTANT_RTOL * np.maximum(1.0, np.abs(means))

    centered = data - means
    if drop_constant:
        return centered[:, varying] / stds[varying], varying

    scale = np.where(varying, stds, 1.0)
    out = centered / scale
    out[:, ~varying] = 0.0
    return out, varying


def normalize_block(
    block: LabeledMatrix,
    n_individuals: int,
    min_sum: float = 2.0,
    gene: str = "",
) -> np.ndarray:
    """Clean, filter and standardize one gene block.

    Args:
        block: Materialized block (rows=individuals, columns=candidate variants).
            Identifier columns are removed from it in place.
        n_individuals: Cohort size; the block must have this many rows.
        min_sum: Minimum column sum for a variant to be retained.
        gene: Gene identifier, used in log messages only.

    Returns:
        Standardized matrix (n_individuals, n_retained). n_retained may be 0.

    Raises:
        BlockRowCountError: If the block row count differs from n_individuals.
    """
    if block.nrows != n_individuals:
        raise BlockRowCountError(expected=n_individuals, found=block.nrows)

    logger.debug("Removing eid column")
    strip_identifier_columns(block)

    logger.debug("Normalizing block")
    data = impute_nan_to_mean(block.data)
    n_candidates = data.shape[1]
    data, _ = filter_min_sum(data, min_sum)
    n_after_sum = data.shape[1]
    data, varying = standardize_columns(data, drop_constant=True)

    n_constant = int((~varying).sum())
    if n_constant:
        logger.debug(f"Block {gene}: dropped {n_constant} constant columns")
    logger.debug(
        f"Block {gene}: {data.shape[1]}/{n_candidates} variants retained "
        f"({n_candidates - n_after_sum} below min_sum={min_sum})"
    )
    return data
