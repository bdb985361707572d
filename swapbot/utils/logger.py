from __future__ import annotations
import logging
from logging.handlers import RotatingFileHandler
import os, functools, time
from pathlib import Path
from typing import Optional

_CONSOLE_FMT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
_FILE_FMT = "%(asctime)s | %(levelname)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _LoggerManager:
    """
    Console output on the root logger plus one rotating file per module.

    Loggers are created at import time from ``LOG_*`` environment defaults;
    :meth:`configure` later re-targets every handler from the loaded
    :class:`~swapbot.utils.config.BotConfig`.
    """

    def __init__(self) -> None:
        self._configured = False
        self._module_handlers: dict[str, RotatingFileHandler] = {}
        self._level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        self._log_dir = os.getenv("LOG_DIR", "./logs")
        self._max_bytes = int(os.getenv("LOG_MAX_BYTES", "1048576"))
        self._backup_count = int(os.getenv("LOG_BACKUP_COUNT", "3"))

    @property
    def level(self) -> int:
        return getattr(logging, self._level_name, logging.INFO)

    @property
    def log_dir(self) -> str:
        return self._log_dir

    def _ensure(self) -> None:
        if self._configured:
            return

        root = logging.getLogger()
        root.setLevel(self.level)
        if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
                   for h in root.handlers):
            sh = logging.StreamHandler()
            sh.setFormatter(logging.Formatter(fmt=_CONSOLE_FMT, datefmt=_DATEFMT))
            root.addHandler(sh)
        self._apply_console_level()

        # web3 is chatty at DEBUG
        logging.getLogger("web3").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)

        self._configured = True

    def _apply_console_level(self) -> None:
        root = logging.getLogger()
        root.setLevel(self.level)
        for h in root.handlers:
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
                h.setLevel(self.level)

    def _file_handler(self, name: str) -> Optional[RotatingFileHandler]:
        safe_name = name.replace(".", "_").replace("/", "_")
        try:
            Path(self._log_dir).mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(os.path.join(self._log_dir, f"{safe_name}.log"),
                                     maxBytes=self._max_bytes, backupCount=self._backup_count,
                                     encoding="utf-8")
        except OSError as e:
            logging.getLogger(name).warning(f"File logging disabled for {name}: {e}")
            return None
        fh.setLevel(self.level)
        fh.setFormatter(logging.Formatter(fmt=_FILE_FMT, datefmt=_DATEFMT))
        return fh

    def setup_logger(self, name: str) -> logging.Logger:
        self._ensure()
        logger = logging.getLogger(name)

        if name not in self._module_handlers:
            fh = self._file_handler(name)
            if fh is not None:
                self._module_handlers[name] = fh
                logger.addHandler(fh)
                logger.propagate = True  # keep console output

        return logger

    def configure(self, level: Optional[str] = None, log_dir: Optional[str] = None,
                  max_bytes: Optional[int] = None, backup_count: Optional[int] = None) -> None:
        """Apply logging settings to the console and to every module file."""
        self._ensure()
        if level:
            self._level_name = level.upper()
        relocate = False
        if log_dir and log_dir != self._log_dir:
            self._log_dir, relocate = log_dir, True
        if max_bytes is not None and max_bytes != self._max_bytes:
            self._max_bytes, relocate = max_bytes, True
        if backup_count is not None and backup_count != self._backup_count:
            self._backup_count, relocate = backup_count, True

        self._apply_console_level()
        for name, old in list(self._module_handlers.items()):
            if not relocate:
                old.setLevel(self.level)
                continue
            logger = logging.getLogger(name)
            logger.removeHandler(old)
            old.close()
            del self._module_handlers[name]
            fh = self._file_handler(name)
            if fh is not None:
                self._module_handlers[name] = fh
                logger.addHandler(fh)

    def handler_for(self, name: str) -> Optional[RotatingFileHandler]:
        return self._module_handlers.get(name)


logger_manager = _LoggerManager()


def log_function(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logger_manager.setup_logger(func.__module__)
        logger.debug(f"→ {func.__qualname__} args={args[1:] if args else args} kwargs={kwargs}")
        t0 = time.time()
        try:
            result = func(*args, **kwargs)
            logger.debug(f"← {func.__qualname__} ({(time.time()-t0)*1000:.1f} ms)")
            return result
        except Exception as e:
            logger.exception(f"✗ {func.__qualname__}: {e}")
            raise
    return wrapper
