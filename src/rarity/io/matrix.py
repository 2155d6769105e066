"""Labeled numeric matrix I/O.

Gene blocks and phenotypes are read into LabeledMatrix objects: a float64
array of shape (n_individuals, n_columns) plus optional column names.
Reading happens in two phases: open_matrix() returns a LazyMatrix descriptor
holding only the path and format, and materialize() reads the data. The
descriptor holds no open file handle, so it can be created at discovery time
and passed to whichever worker thread eventually consumes it.

Supported formats (selected by file suffix):
- .csv / .tsv / .txt (optionally .gz): header row of column names, then one
  row per individual. "NA" and empty fields are missing (NaN); any other
  non-numeric cell is an error, except in the eid/IID identifier columns.
  .txt is whitespace-delimited.
- .npy: 2-D numeric array, no column names.
- .npz: array "data" and optional array "colnames".
- .bed: PLINK binary genotypes via bed-reader (.bim/.fam alongside); column
  names are the variant IDs.
"""

from __future__ import annotations

import gzip
import zlib
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from bed_reader import open_bed

_TEXT_DELIMITERS = {".csv": ",", ".tsv": "\t", ".txt": None}

# Longest first so ".csv.gz" wins over ".gz"
MATRIX_SUFFIXES = (
    ".csv.gz",
    ".tsv.gz",
    ".txt.gz",
    ".csv",
    ".tsv",
    ".txt",
    ".npy",
    ".npz",
    ".bed",
)

MISSING_TOKENS = ("NA", "NaN", "nan", "")

# Sample identifier columns; parsed leniently since IDs need not be numeric
IDENTIFIER_COLUMNS = ("eid", "IID")


class MatrixFormatError(ValueError):
    """A matrix file has an unknown format or cannot be parsed."""


def matrix_suffix(path: Path | str) -> str | None:
    """Return the recognized matrix suffix of a path, or None.

    Example:
        >>> matrix_suffix("genes/ENSG0001.csv.gz")
        '.csv.gz'
    """
    name = Path(path).name.lower()
    for suffix in MATRIX_SUFFIXES:
        if name.endswith(suffix):
            return suffix
    return None


def strip_matrix_suffix(name: str) -> str:
    """Remove a recognized matrix suffix from a file name."""
    suffix = matrix_suffix(name)
    if suffix is None:
        return name
    return name[: len(name) - len(suffix)]


@dataclass
class LabeledMatrix:
    """Container for a materialized matrix.

    Attributes:
        data: float64 array with shape (n_rows, n_cols).
        colnames: Column names, or None when the source has none.
    """

    data: np.ndarray
    colnames: list[str] | None = None

    def __post_init__(self) -> None:
        if self.data.ndim == 1:
            self.data = self.data.reshape(-1, 1)
        if self.data.ndim != 2:
            raise MatrixFormatError(
                f"Expected a 2-D matrix, got {self.data.ndim} dimensions"
            )
        if self.colnames is not None and len(self.colnames) != self.data.shape[1]:
            raise MatrixFormatError(
                f"{len(self.colnames)} column names for "
                f"{self.data.shape[1]} columns"
            )

    @property
    def nrows(self) -> int:
        """Number of rows (individuals)."""
        return self.data.shape[0]

    @property
    def ncols(self) -> int:
        """Number of columns."""
        return self.data.shape[1]

    def column_names(self) -> list[str]:
        """Column names, falling back to "1".."n" when the source has none."""
        if self.colnames is not None:
            return list(self.colnames)
        return [str(i) for i in range(1, self.ncols + 1)]

    def remove_column_if_exists(self, name: str) -> bool:
        """Drop every column called ``name``.

        Returns:
            True if at least one column was removed.
        """
        if self.colnames is None:
            return False
        keep = [i for i, col in enumerate(self.colnames) if col != name]
        if len(keep) == len(self.colnames):
            return False
        self.data = self.data[:, keep]
        self.colnames = [self.colnames[i] for i in keep]
        return True


@dataclass(frozen=True)
class LazyMatrix:
    """Descriptor for a matrix file that has not been read yet.

    Attributes:
        path: Path to the matrix file.
        suffix: Recognized matrix suffix selecting the reader.
    """

    path: Path
    suffix: str

    def exists(self) -> bool:
        """Whether the underlying file is still present."""
        return self.path.is_file()

    def materialize(self) -> LabeledMatrix:
        """Read the file into memory.

        Raises:
            FileNotFoundError: If the file (or a PLINK sidecar) is missing.
            MatrixFormatError: If the file cannot be decoded or parsed,
                including bad encodings and corrupt compressed streams.
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Matrix file not found: {self.path}")
        if self.suffix not in MATRIX_SUFFIXES:
            raise MatrixFormatError(f"Unsupported matrix format: {self.path.name}")

        try:
            if self.suffix == ".npy":
                return _read_npy(self.path)
            if self.suffix == ".npz":
                return _read_npz(self.path)
            if self.suffix == ".bed":
                return _read_bed(self.path)
            return _read_text(self.path, self.suffix)
        except (FileNotFoundError, MatrixFormatError):
            raise
        # UnicodeDecodeError is a ValueError; gzip.BadGzipFile an OSError
        except (ValueError, OSError, EOFError, zlib.error) as e:
            raise MatrixFormatError(f"Cannot read {self.path}: {e}") from e


def open_matrix(path: Path | str) -> LazyMatrix:
    """Create a LazyMatrix for a file without reading its data.

    Raises:
        MatrixFormatError: If the suffix is not a supported matrix format.
    """
    path = Path(path)
    suffix = matrix_suffix(path)
    if suffix is None:
        raise MatrixFormatError(
            f"Unsupported matrix format: {path.name} "
            f"(expected one of {', '.join(MATRIX_SUFFIXES)})"
        )
    return LazyMatrix(path=path, suffix=suffix)


def read_matrix(path: Path | str) -> LabeledMatrix:
    """Open and materialize a matrix file in one call."""
    return open_matrix(path).materialize()


def _split_fields(line: str, delimiter: str | None) -> list[str]:
    fields = line.rstrip("\r\n").split(delimiter)
    return [field.strip().strip('"') for field in fields]


def _parse_cell(token: str, lenient: bool) -> float:
    """Parse one numeric cell; missing markers become NaN.

    Raises:
        ValueError: If the token is not a number and ``lenient`` is False.
    """
    if token in MISSING_TOKENS:
        return np.nan
    try:
        return float(token)
    except ValueError:
        if lenient:
            return np.nan
        raise


def _read_text(path: Path, suffix: str) -> LabeledMatrix:
    delimiter = _TEXT_DELIMITERS[suffix.removesuffix(".gz")]
    opener = gzip.open if suffix.endswith(".gz") else open

    colnames: list[str] | None = None
    rows: list[tuple[int, list[str]]] = []
    with opener(path, "rt", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            fields = _split_fields(line, delimiter)
            if colnames is None:
                colnames = fields
            else:
                rows.append((lineno, fields))

    if colnames is None:
        raise MatrixFormatError(f"Matrix file is empty: {path}")
    n_cols = len(colnames)

    # Identifier columns may hold non-numeric sample IDs; they become NaN
    # here and are removed by the caller.
    lenient = [name in IDENTIFIER_COLUMNS for name in colnames]

    data = np.empty((len(rows), n_cols), dtype=np.float64)
    for i, (lineno, fields) in enumerate(rows):
        if len(fields) != n_cols:
            raise MatrixFormatError(
                f"Matrix file {path} line {lineno} has {len(fields)} fields "
                f"but {n_cols} header names"
            )
        for j, token in enumerate(fields):
            try:
                data[i, j] = _parse_cell(token, lenient[j])
            except ValueError:
                raise MatrixFormatError(
                    f"Matrix file {path} line {lineno}, column '{colnames[j]}': "
                    f"cannot parse {token!r} as a number"
                ) from None
    return LabeledMatrix(data=data, colnames=colnames)


def _read_npy(path: Path) -> LabeledMatrix:
    data = np.load(path, allow_pickle=False)
    return LabeledMatrix(data=np.asarray(data, dtype=np.float64))


def _read_npz(path: Path) -> LabeledMatrix:
    with np.load(path, allow_pickle=False) as archive:
        if "data" not in archive:
            raise MatrixFormatError(f"{path} has no 'data' array")
        data = np.asarray(archive["data"], dtype=np.float64)
        colnames = (
            [str(c) for c in archive["colnames"]] if "colnames" in archive else None
        )
    return LabeledMatrix(data=data, colnames=colnames)


def _read_bed(path: Path) -> LabeledMatrix:
    with open_bed(path) as bed:
        # (n_individuals, n_variants); NaN = missing call
        data = bed.read(dtype=np.float64)
        colnames = [str(s) for s in bed.sid]
    return LabeledMatrix(data=data, colnames=colnames)
