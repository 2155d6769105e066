"""Gene block discovery.

Blocks live one file per gene in per-chromosome directories under a root:

    root/
        chr_01/ENSG00000187634.csv
        chr_01/ENSG00000188976.csv
        ...
        chr_22/ENSG00000100320.npy

Chromosome 0 is the root directory itself (flat layouts), scanned only when
requested. Discovery builds LazyMatrix descriptors without reading any data.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from rarity.io.matrix import LazyMatrix, matrix_suffix, strip_matrix_suffix

CHROMOSOMES = range(1, 23)

# PLINK sidecars belong to the .bed block next to them
_SIDECAR_SUFFIXES = (".bim", ".fam")


@dataclass(frozen=True)
class GeneBlock:
    """A discovered gene block awaiting processing.

    Attributes:
        chromosome: Chromosome number (1-22), or 0 for the flat root directory.
        identifier: Gene identifier (file name without its matrix suffix).
        handle: Lazy reference to the block file.
    """

    chromosome: int
    identifier: str
    handle: LazyMatrix

    @property
    def path(self) -> Path:
        return self.handle.path


def chromosome_dir(root: Path, chromosome: int) -> Path:
    """Directory holding the blocks of a chromosome (root itself for 0)."""
    if chromosome == 0:
        return root
    return root / f"chr_{chromosome:02d}"


def _scan_dir(directory: Path, chromosome: int, exclude: set[Path]) -> list[GeneBlock]:
    blocks = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.name.startswith("."):
            continue
        if path.resolve() in exclude:
            continue
        if path.suffix.lower() in _SIDECAR_SUFFIXES:
            continue
        # Unknown formats are still jobs; they fail at materialize time and
        # are logged there like any other unreadable block.
        suffix = matrix_suffix(path) or path.suffix.lower()
        blocks.append(
            GeneBlock(
                chromosome=chromosome,
                identifier=strip_matrix_suffix(path.name),
                handle=LazyMatrix(path=path, suffix=suffix),
            )
        )
    return blocks


def discover_gene_blocks(
    root: Path | str,
    include_root: bool = False,
    exclude: Iterable[Path | str] = (),
) -> dict[int, list[GeneBlock]]:
    """Discover gene block files per chromosome.

    Args:
        root: Root data directory containing chr_01 .. chr_22.
        include_root: Also treat regular files directly under root as
            chromosome 0 blocks.
        exclude: Paths that are never blocks (e.g. phenotype files).

    Returns:
        Dict mapping chromosome number to its blocks, sorted by file name.
        Chromosomes without a directory map to an empty list.

    Raises:
        FileNotFoundError: If root is not a directory.
    """
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Data directory not found: {root}")

    excluded = {Path(p).resolve() for p in exclude}
    chromosomes = [0, *CHROMOSOMES] if include_root else list(CHROMOSOMES)

    found: dict[int, list[GeneBlock]] = {}
    for chrom in chromosomes:
        directory = chromosome_dir(root, chrom)
        if not directory.is_dir():
            logger.debug(f"No directory for chromosome {chrom}: {directory}")
            found[chrom] = []
            continue
        found[chrom] = _scan_dir(directory, chrom, excluded)
        logger.debug(f"Chromosome {chrom}: {len(found[chrom])} gene blocks")
    return found


def flatten_jobs(blocks_by_chr: dict[int, list[GeneBlock]]) -> list[GeneBlock]:
    """Flatten per-chromosome blocks into a single job list (chromosome order)."""
    return [block for chrom in sorted(blocks_by_chr) for block in blocks_by_chr[chrom]]
