"""Phenotype loading, validation and standardization.

Phenotype files hold one row per individual and one column per trait, with
optional identifier columns (eid, IID). All files of a run must describe the
same cohort in the same row order: they are validated against each other
before any gene block is processed, and any violation aborts the run.
"""

from __future__ import annotations

from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from loguru import logger

from rarity.block import standardize_columns, strip_identifier_columns
from rarity.io.matrix import LabeledMatrix, open_matrix


class PhenotypeValidationError(ValueError):
    """Phenotype inputs are unusable; the run cannot start."""


class PhenotypeRowCountError(PhenotypeValidationError):
    """Phenotype files disagree on the number of individuals."""


class PhenotypeMissingValueError(PhenotypeValidationError):
    """A phenotype file contains NaN values."""


@dataclass(frozen=True)
class Phenotype:
    """A standardized phenotype matrix shared read-only for a run.

    Attributes:
        source: Phenotype file name as given by the caller.
        trait_names: Trait (column) names in column order.
        data: Standardized traits, shape (n_individuals, n_traits), read-only.
    """

    source: str
    trait_names: tuple[str, ...]
    data: np.ndarray

    @property
    def n_individuals(self) -> int:
        return self.data.shape[0]

    @property
    def n_traits(self) -> int:
        return self.data.shape[1]


def validate_phenotypes(sources: list[str], matrices: list[LabeledMatrix]) -> int:
    """Check that all phenotype matrices share a row count and hold no NaN.

    Args:
        sources: File names, parallel to matrices (for error messages).
        matrices: Materialized phenotype matrices, identifier columns removed.

    Returns:
        The shared row count.

    Raises:
        PhenotypeRowCountError: If row counts differ.
        PhenotypeMissingValueError: If any matrix contains NaN.
    """
    nrows = matrices[0].nrows
    for source, matrix in zip(sources, matrices):
        if matrix.nrows != nrows:
            raise PhenotypeRowCountError(
                f"Phenotypes must have the same number of rows: "
                f"{sources[0]} has {nrows}, {source} has {matrix.nrows}"
            )
    for source, matrix in zip(sources, matrices):
        nan_cols = np.flatnonzero(np.isnan(matrix.data).any(axis=0))
        if nan_cols.size:
            first = matrix.column_names()[nan_cols[0]]
            raise PhenotypeMissingValueError(
                f"Phenotypes must not contain NaN values: {source} has NaN "
                f"in {nan_cols.size} column(s), first '{first}'"
            )
    return nrows


def _standardize(source: str, matrix: LabeledMatrix) -> Phenotype:
    data, varying = standardize_columns(matrix.data, drop_constant=False)
    names = tuple(matrix.column_names())
    for name in np.asarray(names, dtype=object)[~varying]:
        logger.warning(
            f"Trait {name} in {source} has zero variance; "
            "it will produce no results"
        )
    data.setflags(write=False)
    return Phenotype(source=source, trait_names=names, data=data)


def load_phenotypes(
    paths: list[Path | str], executor: Executor | None = None
) -> list[Phenotype]:
    """Load, validate and standardize phenotype files.

    Files are materialized in parallel when an executor is given.

    Args:
        paths: Phenotype files, in output order.
        executor: Optional executor used to read the files concurrently.

    Returns:
        One Phenotype per path, in the same order.

    Raises:
        ValueError: If paths is empty.
        FileNotFoundError: If a file does not exist.
        MatrixFormatError: If a file cannot be parsed.
        PhenotypeRowCountError: If files disagree on the number of rows.
        PhenotypeMissingValueError: If any file contains NaN.
    """
    if not paths:
        raise ValueError("At least one phenotype file is required")

    sources = [str(p) for p in paths]
    handles = [open_matrix(p) for p in paths]
    if executor is not None:
        matrices = list(executor.map(lambda h: h.materialize(), handles))
    else:
        matrices = [h.materialize() for h in handles]

    for matrix in matrices:
        strip_identifier_columns(matrix)

    nrows = validate_phenotypes(sources, matrices)

    phenotypes = [_standardize(s, m) for s, m in zip(sources, matrices)]
    n_traits = sum(p.n_traits for p in phenotypes)
    logger.info(
        f"Loaded {len(phenotypes)} phenotype file(s): "
        f"{nrows} individuals, {n_traits} traits"
    )
    return phenotypes
