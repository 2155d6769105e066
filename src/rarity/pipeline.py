"""Pipeline orchestration for RARity.

Provides a RarityRunner service class that encapsulates a full run: validate
inputs, load and validate phenotypes, discover gene blocks, process them in
parallel and collect the results. Both the CLI (cli.py) and the Python API
(run_analysis) delegate to this runner.

Example:
    >>> from rarity.pipeline import RarityRunner
    >>> from rarity.core.config import RarityConfig
    >>> runner = RarityRunner("data/blocks", ["pheno.csv"], RarityConfig(worker_count=4))
    >>> result = runner.run()
    >>> print(f"{len(result.records)} records from {result.n_blocks} blocks")
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from rarity.core.config import RarityConfig, get_default_config
from rarity.core.threading import blas_threads
from rarity.io.scanner import GeneBlock, discover_gene_blocks, flatten_jobs
from rarity.phenotype import Phenotype, load_phenotypes
from rarity.scheduler import BlockScheduler
from rarity.stats import ResultRecord
from rarity.utils.logging import log_rss_memory, setup_logging


@dataclass
class RunResult:
    """Result of a RARity run.

    Attributes:
        records: One record per (gene, phenotype file, trait), unordered.
        n_individuals: Cohort size shared by all phenotypes.
        n_phenotypes: Number of phenotype files.
        n_traits: Total number of traits across phenotype files.
        n_blocks: Number of gene blocks discovered.
        n_blocks_processed: Blocks that produced statistics.
        n_blocks_skipped: Blocks that produced no records (missing,
            unreadable, mismatched or without retained variants).
        timing: Timing breakdown by phase, in seconds.
    """

    records: list[ResultRecord]
    n_individuals: int
    n_phenotypes: int
    n_traits: int
    n_blocks: int
    n_blocks_processed: int
    n_blocks_skipped: int
    timing: dict[str, float] = field(default_factory=dict)


class RarityRunner:
    """Orchestrates a complete RARity run.

    The configuration is a frozen snapshot taken at construction; later
    changes to the process default configuration do not affect this runner.

    Raises exceptions (ValueError, FileNotFoundError and the phenotype
    validation errors) rather than calling sys.exit or typer.Exit. The CLI
    wrapper catches these and converts them to user-friendly messages.

    Args:
        root: Data directory containing chr_01 .. chr_22 block directories.
        phenotype_files: Phenotype files, in output order.
        config: Run configuration, or None for the process default.
    """

    def __init__(
        self,
        root: Path | str,
        phenotype_files: list[Path | str],
        config: RarityConfig | None = None,
    ) -> None:
        self.root = Path(root)
        self.phenotype_files = list(phenotype_files)
        self.config = config if config is not None else get_default_config()

    def validate_inputs(self) -> None:
        """Validate that the data directory and phenotype files exist.

        Raises:
            ValueError: If no phenotype files were given.
            FileNotFoundError: If the data directory or a phenotype file is
                missing.
        """
        if not self.phenotype_files:
            raise ValueError("At least one phenotype file is required")
        if not self.root.is_dir():
            raise FileNotFoundError(f"Data directory not found: {self.root}")
        for path in self.phenotype_files:
            if not Path(path).is_file():
                raise FileNotFoundError(f"Phenotype file not found: {path}")

    def load_phenotypes(self) -> list[Phenotype]:
        """Load, validate and standardize the phenotype files."""
        logger.info("Reading phenotypes")
        n_threads = min(
            len(self.phenotype_files), self.config.resolved_compute_pool_size()
        )
        with ThreadPoolExecutor(max_workers=max(1, n_threads)) as pool:
            return load_phenotypes(self.phenotype_files, executor=pool)

    def discover_jobs(self) -> list[GeneBlock]:
        """Discover gene blocks and flatten them into the job list."""
        blocks = discover_gene_blocks(
            self.root,
            include_root=self.config.include_root,
            exclude=self.phenotype_files,
        )
        jobs = flatten_jobs(blocks)
        n_chr = sum(1 for b in blocks.values() if b)
        logger.info(f"Found {len(jobs)} gene blocks on {n_chr} chromosomes")
        return jobs

    def run(self) -> RunResult:
        """Execute the full run.

        Steps:
        1. Validate inputs
        2. Load and validate phenotypes (fatal errors raised here)
        3. Discover gene blocks
        4. Process blocks in parallel

        Returns:
            RunResult with the records, counts and timing.
        """
        t_start = time.perf_counter()
        config = self.config

        if config.log_level is not None:
            setup_logging(level=config.log_level)

        logger.info(f"Reading data from {self.root}")
        self.validate_inputs()

        t_pheno = time.perf_counter()
        phenotypes = self.load_phenotypes()
        pheno_s = time.perf_counter() - t_pheno

        jobs = self.discover_jobs()

        logger.info("Calculating RARity")
        log_rss_memory("blocks", "start")
        t_blocks = time.perf_counter()
        scheduler = BlockScheduler(phenotypes, config)
        with blas_threads(config.blas_threads):
            records = scheduler.run(jobs)
        blocks_s = time.perf_counter() - t_blocks
        log_rss_memory("blocks", "end")

        total_s = time.perf_counter() - t_start
        logger.info(
            f"Processed {scheduler.aggregator.n_processed}/{len(jobs)} gene blocks "
            f"({scheduler.aggregator.n_skipped} skipped) in {total_s:.1f}s"
        )
        logger.info("Returning results")

        return RunResult(
            records=records,
            n_individuals=phenotypes[0].n_individuals,
            n_phenotypes=len(phenotypes),
            n_traits=sum(p.n_traits for p in phenotypes),
            n_blocks=len(jobs),
            n_blocks_processed=scheduler.aggregator.n_processed,
            n_blocks_skipped=scheduler.aggregator.n_skipped,
            timing={
                "phenotypes_s": pheno_s,
                "blocks_s": blocks_s,
                "total_s": total_s,
            },
        )


def run_analysis(
    root: Path | str,
    phenotype_files: list[Path | str],
    config: RarityConfig | None = None,
) -> list[ResultRecord]:
    """Run a RARity analysis in a single call.

    Args:
        root: Data directory. Blocks for chromosome i are read from
            ``root/chr_{i:02d}``; with ``config.include_root`` files directly
            under root are chromosome 0.
        phenotype_files: Phenotype files (one row per individual, one column
            per trait; eid/IID columns are ignored).
        config: Run configuration. None uses the process default at the time
            of the call (see rarity.set_worker_count and friends).

    Returns:
        One ResultRecord per (gene, phenotype file, trait), unordered.

    Raises:
        FileNotFoundError: If the data directory or a phenotype file is missing.
        ValueError: If no phenotype files are given.
        PhenotypeRowCountError: If phenotype files differ in row count.
        PhenotypeMissingValueError: If a phenotype file contains NaN.
        MatrixFormatError: If a phenotype file cannot be parsed.

    Example:
        >>> from rarity import run_analysis, RarityConfig
        >>> records = run_analysis(
        ...     "data/blocks", ["data/pheno.csv"], RarityConfig(min_sum=5.0)
        ... )
    """
    snapshot = config if config is not None else get_default_config()
    return RarityRunner(root, phenotype_files, snapshot).run().records
