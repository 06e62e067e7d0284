"""Loguru logging configuration for import runs.

Every record carries a ``run`` tag: the first eight characters of the
import run ID while a run is in progress (set with
``logger.contextualize(run=...)``), and ``-`` outside of one.  Chunk-level
lines from concurrent imports can be told apart in a shared log that way.

Records bound with ``json_output=True`` are additionally serialized to
stderr.  When a ``log_dir`` is given, a rotating ``voter-reconciler.log``
file sink is added.
"""

import sys
from pathlib import Path

from loguru import logger

NO_RUN = "-"

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | run={extra[run]:<8} | {name}:{function}:{line} | {message}"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure Loguru sinks.

    Args:
        log_level: Minimum log level to emit.
        log_dir: Optional directory for log files.  When set, a rotating
            file sink is added (rotated every 24 hours, retained 7 days).
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(extra={"run": NO_RUN})
    logger.add(sys.stderr, level=level, format=_LOG_FORMAT, serialize=False)
    logger.add(
        sys.stderr,
        level=level,
        serialize=True,
        filter=lambda record: record["extra"].get("json_output", False),
    )

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "voter-reconciler.log",
            level=level,
            format=_LOG_FORMAT,
            rotation="24h",
            retention="7 days",
        )
