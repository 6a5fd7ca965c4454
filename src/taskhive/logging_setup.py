# src/taskhive/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Counter clamps (ledger) and sweep repairs (reconcile loop) are logged at WARNING.
CONSISTENCY_LOGGERS = ("taskhive.tasks.ledger", "taskhive.tasks.reconcile_scheduler")

# Loggers that only reach the operator console at WARNING+.
_QUIET_ENGINE_LOGGERS = ("taskhive.tasks.reconcile_scheduler", "taskhive.llm.")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the operator console readable:
    - engine logs pass, except the background sweep and provider retry chatter (WARNING+ only)
    - everything else, including captured 'py.warnings', needs ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not name.startswith("taskhive."):
            return record.levelno >= logging.ERROR
        if name.startswith(_QUIET_ENGINE_LOGGERS):
            return record.levelno >= logging.WARNING
        return True


class _ConsistencyFilter(logging.Filter):
    """Counter drift only: ledger clamps and counters fixed by the sweep."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.WARNING and record.name.startswith(CONSISTENCY_LOGGERS)


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskhive",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure root logging. Call once, before the first log record.

    Writes to:
    - stderr: filtered for interactive use
    - <log_dir>/taskhive.log: everything at file_level
    - <log_dir>/consistency.log: counter violations and sweep repairs, for auditing drift
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.addFilter(_ConsoleNoiseFilter())

    full = logging.FileHandler(str(log_dir / "taskhive.log"), encoding="utf-8")
    full.setLevel(file_level)

    consistency = logging.FileHandler(str(log_dir / "consistency.log"), encoding="utf-8")
    consistency.setLevel(logging.WARNING)
    consistency.addFilter(_ConsistencyFilter())

    for handler in (console, full, consistency):
        handler.setFormatter(fmt)
        root.addHandler(handler)

    logging.captureWarnings(True)

    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
