"""Pytest fixtures for the RARity test suite."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pytest
from loguru import logger

# =============================================================================
# Test Tier System
# =============================================================================
#
# tier0 - Fast unit tests (<5s each): pure computation, tiny temp files
#   Run: pytest -m tier0
#
# tier1 - End-to-end runs on small synthetic datasets written to tmp_path
#   Run: pytest -m tier1
#
# tier2 - Scale tests (memory/time intensive), also marked slow
#   Run: pytest -m tier2
#
# Quick reference:
#   pytest -m tier0             # Fast tests only
#   pytest -m "not tier2"       # Exclude slow tests
#   pytest                      # All tests
# =============================================================================

N_INDIVIDUALS = 60


def write_csv(path: Path, colnames: list[str], data: np.ndarray) -> Path:
    """Write a matrix as CSV with a header row; NaN written as NA."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(",".join(colnames) + "\n")
        for row in np.atleast_2d(data):
            f.write(",".join("NA" if np.isnan(v) else repr(float(v)) for v in row))
            f.write("\n")
    return path


def make_genotypes(
    rng: np.random.Generator, n: int, m: int, p: float = 0.1
) -> np.ndarray:
    """Rare-variant dosages in {0, 1, 2}; every column polymorphic, sum >= 2."""
    geno = rng.binomial(2, p, size=(n, m)).astype(np.float64)
    geno[0, :] = 1.0
    geno[1, :] = 1.0
    geno[2, :] = 0.0
    return geno


@dataclass
class SyntheticDataset:
    """Paths and expectations for a small synthetic RARity dataset."""

    root: Path
    phenotype_files: list[Path]
    n_individuals: int
    n_traits: int
    # gene -> (chromosome, number of variants expected to be retained)
    informative: dict[str, tuple[int, int]] = field(default_factory=dict)
    degenerate: list[str] = field(default_factory=list)
    mismatched: list[str] = field(default_factory=list)


@pytest.fixture
def synthetic_dataset(tmp_path: Path) -> SyntheticDataset:
    """Write a small dataset: 3 informative genes, 1 degenerate, 1 mismatched.

    Layout:
        data/chr_01/GENE_A.csv   4 variants + eid column, one NA call
        data/chr_01/GENE_B.csv   3 variants
        data/chr_02/GENE_C.npy   5 variants, no column names
        data/chr_02/GENE_EMPTY.csv  3 all-zero variants (nothing retained)
        data/chr_03/GENE_SHORT.csv  one row short of the cohort
        pheno_a.csv              eid, height, bmi
        pheno_b.csv              IID, score
    """
    rng = np.random.default_rng(20240131)
    n = N_INDIVIDUALS
    root = tmp_path / "data"

    gene_a = make_genotypes(rng, n, 4)
    gene_a[5, 0] = np.nan
    eid = np.arange(1000, 1000 + n, dtype=np.float64)[:, np.newaxis]
    write_csv(
        root / "chr_01" / "GENE_A.csv",
        ["eid", "rs1", "rs2", "rs3", "rs4"],
        np.hstack([eid, gene_a]),
    )

    gene_b = make_genotypes(rng, n, 3)
    write_csv(root / "chr_01" / "GENE_B.csv", ["rs5", "rs6", "rs7"], gene_b)

    gene_c = make_genotypes(rng, n, 5)
    (root / "chr_02").mkdir(parents=True, exist_ok=True)
    np.save(root / "chr_02" / "GENE_C.npy", gene_c)

    write_csv(
        root / "chr_02" / "GENE_EMPTY.csv", ["rs8", "rs9", "rs10"], np.zeros((n, 3))
    )

    write_csv(
        root / "chr_03" / "GENE_SHORT.csv",
        ["rs11", "rs12"],
        make_genotypes(rng, n - 1, 2),
    )

    height = gene_a[:, 1] * 0.8 + rng.normal(size=n)
    bmi = rng.normal(size=n)
    score = gene_b[:, 0] + gene_c[:, 2] + rng.normal(size=n)
    pheno_a = write_csv(
        tmp_path / "pheno_a.csv",
        ["eid", "height", "bmi"],
        np.column_stack([eid[:, 0], height, bmi]),
    )
    pheno_b = write_csv(
        tmp_path / "pheno_b.csv", ["IID", "score"], np.column_stack([eid[:, 0], score])
    )

    return SyntheticDataset(
        root=root,
        phenotype_files=[pheno_a, pheno_b],
        n_individuals=n,
        n_traits=3,
        informative={"GENE_A": (1, 4), "GENE_B": (1, 3), "GENE_C": (2, 5)},
        degenerate=["GENE_EMPTY"],
        mismatched=["GENE_SHORT"],
    )


@pytest.fixture
def log_messages():
    """Collect loguru messages (DEBUG and above) emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]), level="DEBUG"
    )
    yield messages
    # setup_logging() may already have removed every handler
    with contextlib.suppress(ValueError):
        logger.remove(handler_id)


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Create temporary output directory for test results."""
    out = tmp_path / "output"
    out.mkdir()
    return out
