"""RARity: genome-wide rare-variant association scan.

RARity aggregates the rare variants of each gene into a block, normalizes the
block and measures how much phenotypic variance it explains through a joint
multiple linear regression. Blocks are processed in parallel with a bounded
number of blocks resident in memory at once.

Key features:
- Per-(gene, phenotype file, trait) R², adjusted R² and their variances
- Two-level thread parallelism: bounded block workers, core-sized compute pool
- Recoverable per-block failures; fatal phenotype validation up front

Example:
    >>> from rarity import run_analysis
    >>> records = run_analysis("data/blocks", ["data/pheno.csv"])
    >>> print(f"{len(records)} gene/trait results")
"""

import sys
from importlib.metadata import version

from loguru import logger

__version__ = version("rarity")

# Configure loguru with sensible defaults on import
# Users can override by calling logger.remove()/add()
logger.remove()  # Remove default handler
logger.add(
    sys.stdout,
    level="INFO",
    format="{time:HH:mm:ss} | <level>{level: <8}</level> | {message}",
    colorize=True,
)

from rarity.core.config import (  # noqa: E402
    RarityConfig,
    get_default_config,
    reset_default_config,
    set_log_level,
    set_min_sum,
    set_num_threads,
    set_worker_count,
)
from rarity.pipeline import RunResult, run_analysis  # noqa: E402
from rarity.stats import ResultRecord  # noqa: E402

__all__ = [
    "run_analysis",
    "RunResult",
    "ResultRecord",
    "RarityConfig",
    "get_default_config",
    "reset_default_config",
    "set_log_level",
    "set_min_sum",
    "set_num_threads",
    "set_worker_count",
    "__version__",
]
