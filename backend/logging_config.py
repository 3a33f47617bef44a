"""
Configuración de logging del backend.

Uso:
    from logging_config import configure_logging
    configure_logging("INFO", log_file="orbital.log")

Los módulos sólo hacen logging.getLogger(__name__).
"""
from __future__ import annotations

import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configura el root logger una sola vez para toda la app.

    level acepta int (logging.DEBUG) o nombre ("DEBUG").
    log_file (LOG_FILE) agrega un FileHandler además de stdout.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    # httpx loguea cada request en INFO; demasiado ruido para el waterfall
    logging.getLogger("httpx").setLevel(logging.WARNING)
