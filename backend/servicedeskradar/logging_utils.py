"""Configuracion de logging para servicedeskradar."""

from __future__ import annotations

import atexit
import logging
from contextlib import suppress
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import Queue
from threading import Lock
from typing import Optional

from servicedeskradar.config import REPO_ROOT, Settings

_ROOT_LOGGER = "servicedeskradar"
_DISABLED_LEVEL = logging.CRITICAL + 10
_BASE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DEBUG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_last_signature: Optional[tuple[bool, bool, str, bool]] = None
_listener: Optional[QueueListener] = None
_listener_handlers: list[logging.Handler] = []
_config_lock = Lock()
_atexit_registered = False


def _resolve_path(file_name: str | Path) -> Path:
    name = str(file_name).strip() or "servicedeskradar.log"
    path = Path(name)
    if path.is_absolute():
        return path
    return (REPO_ROOT / "logs" / path).resolve()


def _stop_listener() -> None:
    global _listener, _listener_handlers
    if not _listener:
        return
    _listener.stop()
    for handler in _listener_handlers:
        with suppress(Exception):
            handler.close()
    _listener = None
    _listener_handlers = []


def configure_logging(force: bool = False) -> None:
    """Configura el logger raiz del paquete segun Settings (LOG_*).

    Solo se reconfigura si cambia la firma efectiva o si `force=True`.
    """
    global _last_signature, _listener, _listener_handlers, _atexit_registered

    with _config_lock:
        cfg = Settings()
        file_path = str(_resolve_path(cfg.log_file_name)) if cfg.log_to_file else ""
        signature = (cfg.log_enabled, cfg.log_to_file, file_path, cfg.log_debug)
        if not force and _last_signature == signature:
            return
        _last_signature = signature

        logger = logging.getLogger(_ROOT_LOGGER)
        _stop_listener()
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            with suppress(Exception):
                handler.close()

        if not cfg.log_enabled:
            logger.disabled = True
            logger.setLevel(_DISABLED_LEVEL)
            logger.propagate = False
            logger.addHandler(logging.NullHandler())
            return

        level = logging.DEBUG if cfg.log_debug else logging.INFO
        logger.disabled = False
        logger.setLevel(level)
        logger.propagate = False

        formatter = logging.Formatter(
            _DEBUG_FORMAT if cfg.log_debug else _BASE_FORMAT,
            _DATE_FORMAT,
        )

        if cfg.log_to_file:
            log_path = _resolve_path(cfg.log_file_name)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8", delay=True)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            queue: Queue[logging.LogRecord] = Queue(-1)
            queue_handler = QueueHandler(queue)
            queue_handler.setLevel(level)
            logger.addHandler(queue_handler)
            listener = QueueListener(queue, file_handler, respect_handler_level=True)
            listener.start()
            _listener_handlers = [file_handler]
            _listener = listener
            if not _atexit_registered:
                atexit.register(_stop_listener)
                _atexit_registered = True
        else:
            stream_handler = logging.StreamHandler()
            stream_handler.setLevel(level)
            stream_handler.setFormatter(formatter)
            logger.addHandler(stream_handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Devuelve un logger hijo de `servicedeskradar`."""
    if _last_signature is None:
        configure_logging()
    if not name or name == _ROOT_LOGGER:
        return logging.getLogger(_ROOT_LOGGER)
    if not name.startswith(f"{_ROOT_LOGGER}."):
        name = f"{_ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
