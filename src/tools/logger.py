import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(level_style)s | %(name)s | %(message)s"
PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# ANSI color codes (only applied when output is a TTY)
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
SEA_GREEN = "\033[38;5;72m"
BROWN = "\033[38;5;94m"
BLOOD_RED = "\033[38;5;124m"
CYAN = "\033[36m"

# Level → (level_color, emoji)
LEVEL_STYLES = {
    logging.DEBUG: (DIM + CYAN, "🔍"),
    logging.INFO: (SEA_GREEN, "ℹ️ "),
    logging.WARNING: (BROWN, "⚠️ "),
    logging.ERROR: (BLOOD_RED + BOLD, "❌"),
    logging.CRITICAL: (BLOOD_RED + BOLD, "🔥"),
}


class ColoredFormatter(logging.Formatter):
    """
    Formatter that adds colors and emojis per log level.
    Colors are disabled when stderr is not a TTY (CI, pipes, MCP stdio).
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_color: Optional[bool] = None,
    ):
        super().__init__(fmt=fmt or LOG_FORMAT, datefmt=datefmt or DATE_FORMAT)
        if use_color is None:
            use_color = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if self.use_color and record.levelno in LEVEL_STYLES:
            level_color, emoji = LEVEL_STYLES[record.levelno]
            record.level_style = f"{emoji} {level_color}{record.levelname:<8}{RESET}"
        else:
            record.level_style = f"{record.levelname:<10}"
        return super().format(record)


def _resolve_level(level: Optional[int]) -> int:
    if level is not None:
        return level
    resolved = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Create a configured console logger for one engine component.

    - Level comes from ``LOG_LEVEL`` unless passed explicitly.
    - Console output goes to stderr so MCP stdio JSON-RPC stays clean.
    - ``CONTRACT_ENGINE_LOG_FILE`` adds a plain-text file handler.

    Example:
        >>> logger = setup_logger("template-matcher")
        >>> logger.info("ready")
    """
    logger = logging.getLogger(name)
    resolved = _resolve_level(level)
    logger.setLevel(resolved)

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter())
    console_handler.setLevel(resolved)
    logger.addHandler(console_handler)

    log_file = os.getenv("CONTRACT_ENGINE_LOG_FILE")
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, DATE_FORMAT))
        file_handler.setLevel(resolved)
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger
