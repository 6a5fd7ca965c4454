# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from taskhive.logging_setup import _ConsoleNoiseFilter, setup_logging


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_keeps_engine_logs_and_quiets_the_rest() -> None:
    f = _ConsoleNoiseFilter()

    assert f.filter(_record("taskhive.tasks.ledger", logging.INFO))
    assert not f.filter(_record("taskhive.tasks.reconcile_scheduler", logging.INFO))
    assert f.filter(_record("taskhive.tasks.reconcile_scheduler", logging.WARNING))
    assert not f.filter(_record("taskhive.llm.client", logging.INFO))
    assert f.filter(_record("taskhive.llm.client", logging.WARNING))
    assert not f.filter(_record("httpx", logging.WARNING))
    assert not f.filter(_record("py.warnings", logging.WARNING))
    assert f.filter(_record("openai", logging.ERROR))


def test_setup_logging_writes_debug_file(tmp_path: Path, restore_root_logging) -> None:
    setup_logging(log_dir=tmp_path / "logs", console_level=logging.WARNING)

    logging.getLogger("taskhive.test").debug("counter drift details")
    for h in logging.getLogger().handlers:
        h.flush()

    text = (tmp_path / "logs" / "taskhive.log").read_text("utf-8")
    assert "counter drift details" in text


def test_consistency_log_only_gets_counter_drift(tmp_path: Path, restore_root_logging) -> None:
    setup_logging(log_dir=tmp_path, console_level=logging.CRITICAL)

    logging.getLogger("taskhive.tasks.ledger").warning("Consistency violation: member=m1 clamped")
    logging.getLogger("taskhive.tasks.ledger").debug("Ledger: member=m1 1 -> 2")
    logging.getLogger("taskhive.tasks.reconcile_scheduler").warning("Reconcile fixed 1 counter")
    logging.getLogger("taskhive.llm.client").warning("giving up after 3 attempts")
    for h in logging.getLogger().handlers:
        h.flush()

    audit = (tmp_path / "consistency.log").read_text("utf-8")
    assert "Consistency violation: member=m1 clamped" in audit
    assert "Reconcile fixed 1 counter" in audit
    assert "1 -> 2" not in audit
    assert "giving up" not in audit

    full = (tmp_path / "taskhive.log").read_text("utf-8")
    assert "1 -> 2" in full and "giving up" in full
