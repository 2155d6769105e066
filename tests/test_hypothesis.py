"""Property-based tests using Hypothesis.

These tests verify invariants of the block normalization and the regression
statistics across random inputs:
1. Standardized columns have zero mean and unit sample variance
2. R² stays within [0, 1] and the derived statistics follow their identities
3. The column-sum filter keeps exactly the columns at or above the threshold
"""

from __future__ import annotations

import numpy as np
import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from rarity.block import filter_min_sum, standardize_columns
from rarity.stats import derive_statistics, regression_r2


@st.composite
def genotype_matrix(draw, min_samples=10, max_samples=80, min_snps=1, max_snps=8):
    """Rare-variant dosage matrices (values in {0, 1, 2})."""
    n_samples = draw(st.integers(min_value=min_samples, max_value=max_samples))
    n_snps = draw(st.integers(min_value=min_snps, max_value=max_snps))
    seed = draw(st.integers(min_value=0, max_value=2**32 - 1))
    p = draw(st.floats(min_value=0.01, max_value=0.3))

    rng = np.random.default_rng(seed)
    return rng.binomial(2, p, size=(n_samples, n_snps)).astype(np.float64)


pytestmark = pytest.mark.tier0


@given(genotype_matrix())
@settings(max_examples=50, deadline=None)
def test_standardized_columns_are_unit_scaled(geno):
    out, varying = standardize_columns(geno)

    assert out.shape == (geno.shape[0], int(varying.sum()))
    assert np.isfinite(out).all()
    if out.shape[1]:
        np.testing.assert_allclose(out.mean(axis=0), 0.0, atol=1e-9)
        np.testing.assert_allclose(out.var(axis=0, ddof=1), 1.0, atol=1e-9)


@given(genotype_matrix(), st.floats(min_value=0.0, max_value=20.0))
@settings(max_examples=50, deadline=None)
def test_filter_keeps_columns_at_threshold(geno, min_sum):
    out, keep = filter_min_sum(geno, min_sum)

    sums = geno.sum(axis=0)
    np.testing.assert_array_equal(keep, sums >= min_sum)
    assert out.shape[1] == int(keep.sum())


@given(genotype_matrix(min_samples=20), st.integers(min_value=0, max_value=2**32 - 1))
@settings(max_examples=50, deadline=None, suppress_health_check=[HealthCheck.too_slow])
def test_r2_in_unit_interval(geno, seed):
    y = np.random.default_rng(seed).normal(size=(geno.shape[0], 2))
    r2 = regression_r2(geno, y)
    assert ((r2 >= 0.0) & (r2 <= 1.0)).all()


@given(
    st.floats(min_value=0.0, max_value=1.0),
    st.integers(min_value=3, max_value=10_000),
    st.integers(min_value=1, max_value=100),
)
@settings(max_examples=200, deadline=None)
def test_derived_statistics_identities(r2, n, m):
    if n - m - 1 <= 0:
        return
    s = derive_statistics(r2, n, m)

    ratio = (n - 1) / (n - m - 1)
    assert s.adj_r2 == pytest.approx(1 - (1 - r2) * ratio, abs=1e-9)
    assert s.adj_r2_per_var == pytest.approx(s.adj_r2 / m, abs=1e-12)
    assert s.block_var_adj_r2 == pytest.approx(ratio**2 * s.block_var_r2, rel=1e-9, abs=1e-15)
    assert s.block_var_r2 >= 0.0
    assert s.adj_r2 <= r2 + 1e-12
