"""Parallel gene block scheduler.

Two-level thread parallelism:

- Outer: ``worker_count`` block workers drain a shared LIFO job list. The
  list lock is held only for the pop. Each worker materializes one block at a
  time, so at most ``worker_count`` blocks are resident in memory.
- Inner: while processing a block, a worker fans out one task per phenotype
  onto a compute pool shared by all workers and waits for all of them before
  popping its next job. Compute tasks never submit further tasks, so a worker
  waiting on the pool cannot deadlock it.

numpy and scipy release the GIL inside BLAS/LAPACK, which is where the
regression time goes.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor, wait

from loguru import logger

from rarity.block import BlockError, BlockRowCountError, normalize_block
from rarity.core.config import RarityConfig
from rarity.core.progress import block_progress
from rarity.io.matrix import MatrixFormatError
from rarity.io.scanner import GeneBlock
from rarity.phenotype import Phenotype
from rarity.stats import ResultRecord, compute_block_statistics


class JobQueue:
    """Lock-protected stack of pending gene blocks.

    pop() returns the most recently added job (LIFO); no ordering is
    guaranteed across runs.
    """

    def __init__(self, jobs: list[GeneBlock]) -> None:
        self._jobs = list(jobs)
        self._lock = threading.Lock()

    def pop(self) -> GeneBlock | None:
        """Remove and return one job, or None when the queue is empty."""
        with self._lock:
            if not self._jobs:
                return None
            return self._jobs.pop()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class ResultsAggregator:
    """Append-only, lock-protected collection of result records.

    Also counts block outcomes for the run summary.
    """

    def __init__(self) -> None:
        self._records: list[ResultRecord] = []
        self._lock = threading.Lock()
        self.n_processed = 0
        self.n_skipped = 0

    def extend(self, records: list[ResultRecord]) -> None:
        """Append the records of one finished block."""
        with self._lock:
            self._records.extend(records)
            self.n_processed += 1

    def skip(self) -> None:
        """Count a block that contributed no records."""
        with self._lock:
            self.n_skipped += 1

    def records(self) -> list[ResultRecord]:
        """Snapshot of the collected records."""
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class BlockScheduler:
    """Process gene blocks against loaded phenotypes with bounded parallelism.

    Args:
        phenotypes: Validated, standardized phenotypes (shared read-only).
        config: Run configuration snapshot.
    """

    def __init__(self, phenotypes: list[Phenotype], config: RarityConfig) -> None:
        if not phenotypes:
            raise ValueError("At least one phenotype is required")
        self.phenotypes = phenotypes
        self.config = config
        self.n_individuals = phenotypes[0].n_individuals
        self.aggregator = ResultsAggregator()

    def process_block(self, job: GeneBlock, compute: Executor) -> None:
        """Materialize, normalize and analyse one block.

        Recoverable problems (missing or unreadable file, row-count
        mismatch, no retained variants) are logged and the block yields no
        records.
        """
        gene = job.identifier
        logger.info(f"Processing gene {gene}")

        if not job.handle.exists():
            logger.info(f"Gene {gene} not found")
            self.aggregator.skip()
            return

        try:
            matrix = job.handle.materialize()
            block = normalize_block(
                matrix, self.n_individuals, min_sum=self.config.min_sum, gene=gene
            )
        except FileNotFoundError:
            logger.info(f"Gene {gene} not found")
            self.aggregator.skip()
            return
        except BlockRowCountError as e:
            logger.error(
                f"Block {gene} has different number of rows than phenotypes, "
                f"expected {e.expected}, found {e.found}"
            )
            self.aggregator.skip()
            return
        except (BlockError, MatrixFormatError) as e:
            logger.error(f"Block {gene} could not be read: {e}")
            self.aggregator.skip()
            return

        if block.shape[1] == 0:
            logger.info(f"Gene {gene} has no variants with sum >= {self.config.min_sum}")
            self.aggregator.skip()
            return

        futures = [
            compute.submit(compute_block_statistics, block, pheno, job.chromosome, gene)
            for pheno in self.phenotypes
        ]
        wait(futures)
        records = [r for f in futures for r in f.result()]

        self.aggregator.extend(records)
        logger.info(f"Processed gene {gene}")

    def _worker_loop(
        self, queue: JobQueue, compute: Executor, advance: Callable[[], None]
    ) -> None:
        while True:
            job = queue.pop()
            if job is None:
                break
            self.process_block(job, compute)
            advance()

    def run(self, jobs: list[GeneBlock]) -> list[ResultRecord]:
        """Process every job and return all records (order unspecified).

        Returns only after every worker has finished. Exceptions other than
        the recoverable per-block ones propagate after the barrier.
        """
        if not jobs:
            logger.warning("No gene blocks to process")
            return []

        n_workers = max(1, min(self.config.worker_count, len(jobs)))
        n_compute = self.config.resolved_compute_pool_size()
        logger.debug(f"{n_workers} block workers, {n_compute} compute threads")

        queue = JobQueue(jobs)
        with (
            block_progress(
                len(jobs), desc="Genes", enabled=self.config.show_progress
            ) as advance,
            ThreadPoolExecutor(
                max_workers=n_compute, thread_name_prefix="rarity-compute"
            ) as compute,
            ThreadPoolExecutor(
                max_workers=n_workers, thread_name_prefix="rarity-worker"
            ) as workers,
        ):
            futures = [
                workers.submit(self._worker_loop, queue, compute, advance)
                for _ in range(n_workers)
            ]
            for future in futures:
                future.result()

        return self.aggregator.records()
