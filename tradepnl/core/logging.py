"""Logging utilities."""
from __future__ import annotations

import logging.config
from pathlib import Path

import yaml  # type: ignore[import-untyped]

DEFAULT_LOGGING_CONFIG = Path(__file__).resolve().parents[2] / "configs" / "logging.yaml"


def configure_logging(config_path: Path | None = None) -> None:
    """Configure logging from the YAML configuration file if present."""
    config_path = config_path or DEFAULT_LOGGING_CONFIG
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as config_file:
            logging.config.dictConfig(yaml.safe_load(config_file))
    else:
        logging.basicConfig(level=logging.INFO)
    logging.getLogger("tradepnl").debug("logging configured from %s", config_path)


__all__ = ["DEFAULT_LOGGING_CONFIG", "configure_logging"]
