"""
BotConfig — конфигурация из переменных окружения

Переменные (все необязательные):
    DEFAULT_DURATION_HOURS          — длительность выборов по умолчанию (24)
    DEFAULT_ON_EMPTY_PARTY_VAULT    — burn | admin (burn)
    ADMIN_SINK_USER_ID              — получатель казны пустых партий при admin
    ATOMIC_UPDATE_MAX_RETRIES       — попытки atomic_update (3)
    ATOMIC_UPDATE_BACKOFF_SECONDS   — шаг линейной паузы (0.1)
    JOIN_REQUEST_TIMEOUT_SECONDS    — таймаут заявки на вступление (300)
    ELECTIONBOT_STATE_DIR           — каталог JsonFileTransport (пусто = в памяти)
    ELECTIONBOT_LOG_LEVEL           — уровень логирования (INFO)
    ELECTIONBOT_LOG_FILE            — файл лога (пусто = только консоль)

Файл .env (если передан или найден) загружается через python-dotenv и
не перекрывает уже заданные переменные окружения.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import dotenv_values, find_dotenv

from electionbot.core.domain.election import MAX_DURATION_HOURS
from electionbot.settlement.engine import EmptyVaultPolicy


@dataclass(frozen=True)
class BotConfig:
    """Параметры ядра (immutable)."""

    default_duration_hours: float = 24.0
    empty_vault_policy: EmptyVaultPolicy = EmptyVaultPolicy.BURN
    admin_sink_user_id: Optional[str] = None

    # Optimistic concurrency
    atomic_update_max_retries: int = 3
    atomic_update_backoff_seconds: float = 0.1

    join_request_timeout_seconds: float = 300.0

    # Хранилище и логирование
    state_dir: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if not 0 < self.default_duration_hours <= MAX_DURATION_HOURS:
            raise ValueError(
                f"default_duration_hours must be in (0, {MAX_DURATION_HOURS}], "
                f"got {self.default_duration_hours}"
            )
        if self.empty_vault_policy == EmptyVaultPolicy.ADMIN and not self.admin_sink_user_id:
            raise ValueError("ADMIN_SINK_USER_ID is required when DEFAULT_ON_EMPTY_PARTY_VAULT=admin")
        if self.atomic_update_max_retries < 1:
            raise ValueError(
                f"atomic_update_max_retries must be >= 1, got {self.atomic_update_max_retries}"
            )
        if self.atomic_update_backoff_seconds < 0:
            raise ValueError(
                f"atomic_update_backoff_seconds must be >= 0, got {self.atomic_update_backoff_seconds}"
            )
        if self.join_request_timeout_seconds <= 0:
            raise ValueError(
                f"join_request_timeout_seconds must be > 0, got {self.join_request_timeout_seconds}"
            )

    @classmethod
    def from_env(
        cls,
        dotenv_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BotConfig":
        """
        Сборка конфигурации из окружения.

        Args:
            dotenv_path: Путь к .env; None — поиск .env от текущего каталога вверх
            environ: Источник переменных (по умолчанию os.environ)

        Returns:
            BotConfig

        Raises:
            ValueError: Некорректное значение переменной
        """
        env = dict(environ if environ is not None else os.environ)

        path = dotenv_path if dotenv_path is not None else find_dotenv(usecwd=True)
        if path:
            for key, value in dotenv_values(path).items():
                if value is not None:
                    env.setdefault(key, value)

        policy_raw = env.get("DEFAULT_ON_EMPTY_PARTY_VAULT", EmptyVaultPolicy.BURN.value).strip().lower()
        try:
            policy = EmptyVaultPolicy(policy_raw)
        except ValueError:
            raise ValueError(
                f"DEFAULT_ON_EMPTY_PARTY_VAULT must be 'burn' or 'admin', got {policy_raw!r}"
            )

        return cls(
            default_duration_hours=_float(env, "DEFAULT_DURATION_HOURS", 24.0),
            empty_vault_policy=policy,
            admin_sink_user_id=env.get("ADMIN_SINK_USER_ID") or None,
            atomic_update_max_retries=_int(env, "ATOMIC_UPDATE_MAX_RETRIES", 3),
            atomic_update_backoff_seconds=_float(env, "ATOMIC_UPDATE_BACKOFF_SECONDS", 0.1),
            join_request_timeout_seconds=_float(env, "JOIN_REQUEST_TIMEOUT_SECONDS", 300.0),
            state_dir=env.get("ELECTIONBOT_STATE_DIR") or None,
            log_level=env.get("ELECTIONBOT_LOG_LEVEL", "INFO").upper(),
            log_file=env.get("ELECTIONBOT_LOG_FILE") or None,
        )


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
