"""
Logger — именованные логгеры electionbot

Консольный вывод всегда; файловый вывод (RotatingFileHandler) — только если
задан файл лога. По умолчанию уровень и файл берутся из ELECTIONBOT_LOG_LEVEL
(INFO) и ELECTIONBOT_LOG_FILE; build_service перенастраивает их из BotConfig.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_ROOT_NAME = "electionbot"


def get_logger(name: str) -> logging.Logger:
    """
    Получение именованного логгера.

    Обработчики вешаются один раз на корневой логгер "electionbot";
    дочерние логгеры (electionbot.market, electionbot.storage, ...) наследуют их.

    Args:
        name: Имя компонента (например, "storage", "settlement")

    Returns:
        logging.Logger: Настроенный логгер
    """
    root = logging.getLogger(_ROOT_NAME)
    if not root.handlers:
        _configure(
            root,
            os.environ.get("ELECTIONBOT_LOG_LEVEL", "INFO"),
            os.environ.get("ELECTIONBOT_LOG_FILE") or None,
        )

    if name == _ROOT_NAME or name.startswith(_ROOT_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_NAME}.{name}")


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Замена обработчиков корневого логгера (уровень и файл из конфигурации)."""
    root = logging.getLogger(_ROOT_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    _configure(root, level, log_file)
    return root


def _configure(root: logging.Logger, level_name: str, log_file: Optional[str]) -> None:
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))

    formatter = logging.Formatter(_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    # Файл (максимум 5MB, 3 резервные копии)
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
