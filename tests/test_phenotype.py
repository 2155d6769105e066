"""Tests for phenotype loading, validation and standardization."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
import pytest

from conftest import write_csv
from rarity.io.matrix import MatrixFormatError
from rarity.phenotype import (
    PhenotypeMissingValueError,
    PhenotypeRowCountError,
    PhenotypeValidationError,
    load_phenotypes,
)


def _pheno(path: Path, n: int, traits=("a", "b"), seed: int = 0, eid: bool = True) -> Path:
    rng = np.random.default_rng(seed)
    data = rng.normal(size=(n, len(traits)))
    names = list(traits)
    if eid:
        data = np.column_stack([np.arange(n, dtype=float), data])
        names = ["eid", *names]
    return write_csv(path, names, data)


@pytest.mark.tier0
class TestLoadPhenotypes:
    def test_standardized_and_identifiers_stripped(self, tmp_path: Path):
        path = _pheno(tmp_path / "p.csv", 50, traits=("height", "bmi"))

        (pheno,) = load_phenotypes([path])

        assert pheno.source == str(path)
        assert pheno.trait_names == ("height", "bmi")
        assert pheno.data.shape == (50, 2)
        np.testing.assert_allclose(pheno.data.mean(axis=0), 0.0, atol=1e-9)
        np.testing.assert_allclose(pheno.data.var(axis=0, ddof=1), 1.0, atol=1e-9)

    def test_iid_stripped(self, tmp_path: Path):
        path = tmp_path / "p.csv"
        path.write_text("IID,x\nS1,1\nS2,2\nS3,4\n")
        (pheno,) = load_phenotypes([path])
        assert pheno.trait_names == ("x",)

    def test_data_is_read_only(self, tmp_path: Path):
        (pheno,) = load_phenotypes([_pheno(tmp_path / "p.csv", 10)])
        with pytest.raises(ValueError):
            pheno.data[0, 0] = 1.0

    def test_order_preserved_with_executor(self, tmp_path: Path):
        paths = [
            _pheno(tmp_path / f"p{i}.csv", 20, traits=(f"t{i}",), seed=i)
            for i in range(4)
        ]
        with ThreadPoolExecutor(max_workers=4) as pool:
            phenos = load_phenotypes(paths, executor=pool)
        assert [p.trait_names for p in phenos] == [(f"t{i}",) for i in range(4)]

    def test_numbered_traits_without_colnames(self, tmp_path: Path):
        np.save(tmp_path / "p.npy", np.random.default_rng(0).normal(size=(10, 3)))
        (pheno,) = load_phenotypes([tmp_path / "p.npy"])
        assert pheno.trait_names == ("1", "2", "3")

    def test_zero_variance_trait_kept_as_zeros(self, tmp_path: Path, log_messages):
        path = tmp_path / "p.csv"
        path.write_text("a,flat\n1,3\n2,3\n4,3\n")

        (pheno,) = load_phenotypes([path])

        np.testing.assert_array_equal(pheno.data[:, 1], 0.0)
        assert np.isfinite(pheno.data).all()
        assert any("flat" in m and "zero variance" in m for m in log_messages)


@pytest.mark.tier0
class TestPhenotypeValidation:
    def test_row_count_mismatch(self, tmp_path: Path):
        """500 vs 501 rows aborts with a descriptive error."""
        a = _pheno(tmp_path / "a.csv", 500)
        b = _pheno(tmp_path / "b.csv", 501)

        with pytest.raises(PhenotypeRowCountError, match="same number of rows") as excinfo:
            load_phenotypes([a, b])
        assert "500" in str(excinfo.value)
        assert "501" in str(excinfo.value)
        assert isinstance(excinfo.value, PhenotypeValidationError)

    def test_nan_rejected(self, tmp_path: Path):
        path = tmp_path / "p.csv"
        path.write_text("eid,a,b\n1,1.0,2.0\n2,NA,3.0\n3,2.0,1.0\n")

        with pytest.raises(PhenotypeMissingValueError, match="'a'"):
            load_phenotypes([path])

    def test_non_numeric_trait_reported_as_parse_error(self, tmp_path: Path):
        path = tmp_path / "p.csv"
        path.write_text("eid,a\n1,1.0\n2,tall\n3,2.0\n")

        with pytest.raises(MatrixFormatError, match="column 'a'.*'tall'"):
            load_phenotypes([path])

    def test_nan_in_identifier_column_ignored(self, tmp_path: Path):
        path = tmp_path / "p.csv"
        path.write_text("eid,a\nNA,1.0\n2,3.0\n3,2.0\n")
        (pheno,) = load_phenotypes([path])
        assert pheno.n_individuals == 3

    def test_empty_path_list(self):
        with pytest.raises(ValueError, match="At least one phenotype"):
            load_phenotypes([])

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_phenotypes([tmp_path / "nope.csv"])

    def test_unsupported_format(self, tmp_path: Path):
        path = tmp_path / "p.xlsx"
        path.write_text("x")
        with pytest.raises(MatrixFormatError):
            load_phenotypes([path])
