"""Variance-explained statistics for a gene block.

For a normalized block B (n individuals x m retained variants) and a trait y,
R² is taken from the joint least-squares regression of y on all m columns of
B plus an intercept. From R² the engine derives:

    adj_r2           = 1 - (1 - r2) * (n - 1) / (n - m - 1)
    adj_r2_per_var   = adj_r2 / m
    block_var_r2     = 4 r2 (1 - r2)^2 (n - m - 1)^2 / ((n^2 - 1)(n + 3))
    block_var_adj_r2 = ((n - 1) / (n - m - 1))^2 * block_var_r2

block_var_r2 is the asymptotic variance of the sample R² (Olkin & Finn).
Confidence limits for R² are not computed here; use external tooling
(e.g. MBESS ci.R2) on the exported table.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

import numpy as np
from loguru import logger
from scipy.linalg import lstsq

if TYPE_CHECKING:
    from rarity.phenotype import Phenotype


class DegenerateRegressionError(ValueError):
    """R² statistics are undefined for this (block, trait) pair."""


@dataclass(frozen=True)
class ResultRecord:
    """Statistics for one (phenotype file, trait, chromosome, gene).

    Matches the output table schema, see rarity.io.table.RESULT_COLUMNS.
    """

    pheno_file: str
    trait_name: str
    chr: int
    gene: str
    nb_individuals: int  # cohort size n
    nb_rvs: int  # retained rare variants m
    r2: float
    adj_r2: float
    adj_r2_per_var: float
    block_var_r2: float
    block_var_adj_r2: float


class BlockStatistics(NamedTuple):
    """Derived statistics for a single R² value."""

    r2: float
    adj_r2: float
    adj_r2_per_var: float
    block_var_r2: float
    block_var_adj_r2: float


def regression_r2(predictors: np.ndarray, responses: np.ndarray) -> np.ndarray:
    """R² of the joint regression of each response on all predictors.

    Fits responses = [1, predictors] @ beta by least squares (all response
    columns in one solve) and returns 1 - RSS/TSS per response. Rank
    deficient predictors are handled by the minimum-norm solution.

    Args:
        predictors: Matrix (n, m).
        responses: Matrix (n, k) or vector (n,).

    Returns:
        Array of k R² values. A response with zero total sum of squares
        gets NaN.
    """
    responses = np.asarray(responses, dtype=np.float64)
    if responses.ndim == 1:
        responses = responses[:, np.newaxis]
    n = predictors.shape[0]
    design = np.column_stack([np.ones(n), predictors])

    beta, _, _, _ = lstsq(design, responses, check_finite=False)
    residuals = responses - design @ beta
    rss = np.einsum("ij,ij->j", residuals, residuals)
    centered = responses - responses.mean(axis=0)
    tss = np.einsum("ij,ij->j", centered, centered)

    with np.errstate(invalid="ignore", divide="ignore"):
        r2 = 1.0 - rss / tss
    r2[tss <= 0.0] = np.nan
    # Floating point can push a perfect or null fit marginally outside [0, 1]
    return np.clip(r2, 0.0, 1.0)


def derive_statistics(r2: float, n: int, m: int) -> BlockStatistics:
    """Compute adjusted R² and the asymptotic variances from R².

    Args:
        r2: Coefficient of determination.
        n: Number of individuals.
        m: Number of predictors (retained variants).

    Returns:
        BlockStatistics for the pair.

    Raises:
        DegenerateRegressionError: If m == 0, n - m - 1 <= 0, or r2 is not
            finite.

    Example:
        >>> s = derive_statistics(0.3, n=100, m=5)
        >>> round(s.adj_r2, 6)
        0.262766
    """
    if m <= 0:
        raise DegenerateRegressionError("no predictors (m = 0)")
    df_resid = n - m - 1
    if df_resid <= 0:
        raise DegenerateRegressionError(
            f"n - m - 1 = {df_resid} <= 0 (n={n}, m={m})"
        )
    if not math.isfinite(r2):
        raise DegenerateRegressionError(f"R² is not finite ({r2})")

    n_f = float(n)
    adj_r2 = 1.0 - (1.0 - r2) * (n_f - 1.0) / df_resid
    adj_r2_per_var = adj_r2 / m
    block_var_r2 = (4.0 * r2 * (1.0 - r2) ** 2 * df_resid**2) / (
        (n_f**2 - 1.0) * (n_f + 3.0)
    )
    block_var_adj_r2 = ((n_f - 1.0) / df_resid) ** 2 * block_var_r2
    return BlockStatistics(
        r2=r2,
        adj_r2=adj_r2,
        adj_r2_per_var=adj_r2_per_var,
        block_var_r2=block_var_r2,
        block_var_adj_r2=block_var_adj_r2,
    )


def compute_block_statistics(
    block: np.ndarray,
    phenotype: Phenotype,
    chromosome: int,
    gene: str,
) -> list[ResultRecord]:
    """Compute one ResultRecord per trait of a phenotype for a normalized block.

    Traits failing the numeric guards are logged and skipped, so no record
    ever carries NaN or Inf statistics.

    Args:
        block: Normalized block (n, m) with m > 0.
        phenotype: Standardized phenotype with n rows.
        chromosome: Chromosome of the block.
        gene: Gene identifier.

    Returns:
        Records in trait order, minus skipped traits.
    """
    n, m = block.shape
    logger.info(f"Calculating R2 for gene {gene}")
    r2s = regression_r2(block, phenotype.data)

    records = []
    for trait, r2 in zip(phenotype.trait_names, r2s):
        try:
            s = derive_statistics(float(r2), n, m)
        except DegenerateRegressionError as e:
            logger.warning(
                f"Skipping gene {gene}, trait {trait} ({phenotype.source}): {e}"
            )
            continue
        records.append(
            ResultRecord(
                pheno_file=phenotype.source,
                trait_name=trait,
                chr=chromosome,
                gene=gene,
                nb_individuals=n,
                nb_rvs=m,
                r2=s.r2,
                adj_r2=s.adj_r2,
                adj_r2_per_var=s.adj_r2_per_var,
                block_var_r2=s.block_var_r2,
                block_var_adj_r2=s.block_var_adj_r2,
            )
        )
    return records
