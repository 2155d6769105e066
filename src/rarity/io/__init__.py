"""I/O modules for RARity.

This package contains modules for reading inputs and writing results:
- matrix: Lazy labeled-matrix readers (text, numpy, PLINK .bed)
- scanner: Per-chromosome gene block discovery
- table: Result table export
"""

from rarity.io.matrix import (
    LabeledMatrix,
    LazyMatrix,
    MatrixFormatError,
    open_matrix,
    read_matrix,
)
from rarity.io.scanner import GeneBlock, discover_gene_blocks, flatten_jobs
from rarity.io.table import (
    RESULT_COLUMNS,
    format_result_line,
    results_to_table,
    write_results,
)

__all__ = [
    "GeneBlock",
    "LabeledMatrix",
    "LazyMatrix",
    "MatrixFormatError",
    "RESULT_COLUMNS",
    "discover_gene_blocks",
    "flatten_jobs",
    "format_result_line",
    "open_matrix",
    "read_matrix",
    "results_to_table",
    "write_results",
]
