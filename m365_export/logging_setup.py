"""
Logging bootstrap.

With a descriptor, logging is configured from it (logging.config.fileConfig
INI format). Without one, messages go to the console and to a log file next
to the exports.
"""

from __future__ import annotations

import configparser
import logging
import logging.config
from pathlib import Path
from typing import Optional

from .errors import ModuleLoadError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    log_dir: Optional[str | Path] = None,
    config_path: Optional[str | Path] = None,
    verbose: bool = False,
    timestamp: str = "",
) -> Optional[Path]:
    """
    Configure the root logger. Returns the log file path when one is created.
    Raises ModuleLoadError if the descriptor is missing or invalid.
    """
    if config_path:
        path = Path(config_path)
        if not path.is_file():
            raise ModuleLoadError(f"Logging descriptor not found: {path}")
        try:
            logging.config.fileConfig(path, disable_existing_loggers=False)
        except (configparser.Error, KeyError, ValueError, OSError, RuntimeError) as e:
            raise ModuleLoadError(f"Invalid logging descriptor {path}: {e}") from e
        return None

    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = None
    if log_dir:
        name = f"m365_export {timestamp}.log" if timestamp else "m365_export.log"
        log_file = Path(log_dir) / name
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            raise ModuleLoadError(f"Cannot open log file {log_file}: {e}") from e

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return log_file
