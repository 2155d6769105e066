"""RARity command-line interface.

This module provides a Typer-based CLI with global -outdir, -o and -v options
and a ``run`` command that performs a full scan and writes the result table.
"""

import sys
import time
from pathlib import Path
from typing import Annotated

import typer

import rarity
from rarity.core.config import RarityConfig
from rarity.io.table import write_results
from rarity.pipeline import RarityRunner
from rarity.utils import setup_logging, write_run_log

app = typer.Typer(
    name="rarity",
    help="RARity: rare-variant block heritability scan across the genome.",
    add_completion=False,
)

_outdir: Path = Path("output")
_prefix: str = "result"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"RARity version {rarity.__version__}")
        raise typer.Exit()


@app.callback()
def main(
    outdir: Annotated[
        Path,
        typer.Option("-outdir", help="Output directory"),
    ] = Path("output"),
    output: Annotated[
        str,
        typer.Option("-o", help="Output file prefix"),
    ] = "result",
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Verbose output"),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
) -> None:
    """RARity: variance in traits explained by per-gene rare-variant blocks."""
    global _outdir, _prefix
    _outdir, _prefix = outdir, output
    setup_logging(level="DEBUG" if verbose else "INFO")


@app.command("run")
def run_command(
    root: Annotated[
        Path,
        typer.Argument(help="Data directory containing chr_01 .. chr_22"),
    ],
    pheno: Annotated[
        list[Path],
        typer.Option("-p", "--pheno", help="Phenotype file (repeatable)"),
    ],
    workers: Annotated[
        int,
        typer.Option("--workers", help="Gene blocks processed concurrently"),
    ] = 16,
    threads: Annotated[
        int | None,
        typer.Option("--threads", help="Compute threads (default: all cores)"),
    ] = None,
    min_sum: Annotated[
        float,
        typer.Option("--min-sum", help="Minimum variant column sum"),
    ] = 2.0,
    include_root: Annotated[
        bool,
        typer.Option(
            "--include-root", help="Also scan files directly under ROOT (chr 0)"
        ),
    ] = False,
    progress: Annotated[
        bool,
        typer.Option("--progress/--no-progress", help="Show a progress bar"),
    ] = False,
) -> None:
    """Scan every gene block and write per-(gene, phenotype, trait) statistics."""
    command_line = " ".join(sys.argv)
    t_start = time.perf_counter()

    try:
        config = RarityConfig(
            min_sum=min_sum,
            worker_count=workers,
            compute_pool_size=threads,
            include_root=include_root,
            show_progress=progress,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None

    runner = RarityRunner(root, pheno, config)
    try:
        result = runner.run()
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None

    results_path = write_results(result.records, _outdir / f"{_prefix}.rarity.txt")
    typer.echo(f"Results written to {results_path}")

    params = {
        "data_dir": str(root),
        "phenotype_files": ", ".join(str(p) for p in pheno),
        "n_individuals": result.n_individuals,
        "n_traits": result.n_traits,
        "n_blocks": result.n_blocks,
        "n_blocks_processed": result.n_blocks_processed,
        "n_blocks_skipped": result.n_blocks_skipped,
        "n_records": len(result.records),
        "min_sum": config.min_sum,
        "workers": config.worker_count,
        "compute_threads": config.resolved_compute_pool_size(),
        "output_file": str(results_path),
    }
    timing = {
        "total": time.perf_counter() - t_start,
        "phenotypes": result.timing["phenotypes_s"],
        "blocks": result.timing["blocks_s"],
    }
    log_path = write_run_log(_outdir / f"{_prefix}.log.txt", params, timing, command_line)
    typer.echo(f"Log written to {log_path}")

    typer.echo(
        f"\nAnalyzed {result.n_blocks} gene blocks "
        f"({len(result.records)} results) in {timing['total']:.2f} seconds"
    )


if __name__ == "__main__":
    app()
