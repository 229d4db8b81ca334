from __future__ import annotations

import logging
import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import logging_config  # noqa: E402


def test_configure_logging_is_idempotent_and_writes_file(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(logging_config, "LOG_DIR", tmp_path)
    logger = logging_config.reset_logging("INFO")
    try:
        assert logger.name == "rota"
        handlers = list(logger.handlers)
        assert len(handlers) == 2

        again = logging_config.configure_logging("DEBUG")
        assert again is logger
        assert logger.handlers == handlers
        assert logger.level == logging.DEBUG

        logging.getLogger("rota.service").info("Assigned staff 1 to shift 2 on rota 3")
        for handler in logger.handlers:
            handler.flush()
        text = (tmp_path / "rota.log").read_text(encoding="utf-8")
        assert "Logging initialized" in text
        assert "rota.service" in text
    finally:
        logging_config.reset_logging(reconfigure=False)
