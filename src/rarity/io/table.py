"""Result table export.

Turns ResultRecord lists into a columnar table (dict of numpy arrays, one
per output column) or a tab-separated text file with a header row.
"""

from pathlib import Path

import numpy as np

from rarity.stats import ResultRecord

RESULT_COLUMNS = (
    "pheno_file",
    "trait_name",
    "chr",
    "gene",
    "nb_individuals",
    "nb_rvs",
    "r2",
    "adj_r2",
    "adj_r2_per_var",
    "block_var_r2",
    "block_var_adj_r2",
)

_STRING_COLUMNS = ("pheno_file", "trait_name", "gene")
_INT_COLUMNS = ("chr", "nb_individuals", "nb_rvs")

HEADER = "\t".join(RESULT_COLUMNS)


def results_to_table(records: list[ResultRecord]) -> dict[str, np.ndarray]:
    """Build a columnar table from result records.

    Args:
        records: Result records, in any order.

    Returns:
        Dict keyed by RESULT_COLUMNS, each an array of len(records). String
        columns are object arrays, counts are int64, statistics float64.
    """
    table: dict[str, np.ndarray] = {}
    for col in RESULT_COLUMNS:
        values = [getattr(r, col) for r in records]
        if col in _STRING_COLUMNS:
            table[col] = np.array(values, dtype=object)
        elif col in _INT_COLUMNS:
            table[col] = np.array(values, dtype=np.int64)
        else:
            table[col] = np.array(values, dtype=np.float64)
    return table


def format_result_line(record: ResultRecord) -> str:
    """Format a single record as a tab-separated line (no newline).

    Counts are written as integers, statistics in .6e scientific notation.
    """
    return "\t".join(
        [
            record.pheno_file,
            record.trait_name,
            str(record.chr),
            record.gene,
            str(record.nb_individuals),
            str(record.nb_rvs),
            f"{record.r2:.6e}",
            f"{record.adj_r2:.6e}",
            f"{record.adj_r2_per_var:.6e}",
            f"{record.block_var_r2:.6e}",
            f"{record.block_var_adj_r2:.6e}",
        ]
    )


def write_results(records: list[ResultRecord], path: Path) -> Path:
    """Write result records as a tab-separated table with a header row.

    Args:
        records: Result records to write.
        path: Output file path (parent directories created if needed).

    Returns:
        The written path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write(HEADER + "\n")
        for record in records:
            f.write(format_result_line(record) + "\n")
    return path
