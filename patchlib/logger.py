"""
Console logging for patchlib and the make_preset CLI.

Messages carry the short prefixes the CLI has always printed ([*], [!],
[✓], [✗]). Per-sample messages go through sample_logger so every line about
a sample names its position and file the same way.

Environment Variables:
    PATCHLIB_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (default INFO)
"""

import logging
import os
import sys
from typing import Optional


LEVEL_ENV_VAR = "PATCHLIB_LOG_LEVEL"

# Between INFO (20) and WARNING (30)
SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")


class PatchlibFormatter(logging.Formatter):
    """
    Prefix each line by level:
        DEBUG    -> [·]
        INFO     -> [*]
        SUCCESS  -> [✓]
        WARNING  -> [!]
        ERROR    -> [✗]
        CRITICAL -> [✗✗]

    With include_module, the emitting module is shown after the prefix
    ("[*] [wav_parser] ...").
    """

    PREFIX_MAP = {
        "DEBUG": "[·]",
        "INFO": "[*]",
        "SUCCESS": "[✓]",
        "WARNING": "[!]",
        "ERROR": "[✗]",
        "CRITICAL": "[✗✗]",
    }

    def __init__(self, include_module: bool = False):
        self.include_module = include_module
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        prefix = self.PREFIX_MAP.get(record.levelname, "[?]")
        if not self.include_module:
            return f"{prefix} {record.getMessage()}"
        module = record.name.replace("patchlib.", "").replace("__main__", "main")
        return f"{prefix} [{module}] {record.getMessage()}"


def _env_level() -> int:
    """Numeric level from PATCHLIB_LOG_LEVEL; unknown names mean INFO."""
    name = os.environ.get(LEVEL_ENV_VAR, "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _apply_level(logger: logging.Logger, level: int) -> None:
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
        # Module tags only at DEBUG
        handler.setFormatter(PatchlibFormatter(include_module=level == logging.DEBUG))


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a module, with one stdout handler and the level from the environment.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.warning("Sample 3 skipped")
        [!] Sample 3 skipped
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.StreamHandler(sys.stdout))
        logger.propagate = False
        _apply_level(logger, _env_level())
    return logger


def log_success(logger: logging.Logger, message: str) -> None:
    """Log at the SUCCESS level ([✓] prefix)."""
    logger.log(SUCCESS, message)


class SampleLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with 'sample N (name): ', N being 1-based."""

    def process(self, msg, kwargs):
        return f"sample {self.extra['position']} ({self.extra['name']}): {msg}", kwargs


def sample_logger(logger: logging.Logger, index: int, name: Optional[str] = None) -> SampleLogAdapter:
    """
    Adapter for messages about the sample at 0-based index.

    Example:
        >>> sample_logger(logger, 1, "snare.wav").warning("render failed")
        [!] sample 2 (snare.wav): render failed
    """
    return SampleLogAdapter(logger, {"position": index + 1, "name": name or "unnamed"})


def configure_root_logger(level: Optional[str] = None) -> None:
    """
    Set the application-wide level once at startup (make_preset.py does).

    Module loggers are created at import time, before the CLI has parsed
    --log-level, so every logger made by get_logger is re-levelled here,
    including those of the CLI modules outside the package.

    Args:
        level: Level name; None keeps PATCHLIB_LOG_LEVEL
    """
    if level:
        os.environ[LEVEL_ENV_VAR] = level.upper()
    logging.getLogger().handlers.clear()

    numeric = _env_level()
    for existing in list(logging.Logger.manager.loggerDict.values()):
        if not isinstance(existing, logging.Logger):
            continue
        if any(isinstance(h.formatter, PatchlibFormatter) for h in existing.handlers):
            _apply_level(existing, numeric)
