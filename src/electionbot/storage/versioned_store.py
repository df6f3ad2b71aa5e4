"""
VersionedStateStore — optimistic concurrency поверх DocumentTransport

Протокол atomic_update (без сервера блокировок):
    для attempt = 1..max_retries:
        (json, version) = get_document(id)
        document        = Model(json)
        new_document    = transform(document)
        если update_document(id, new_json, expected_version=version): успех
        иначе (версия изменилась): пауза backoff_seconds * attempt и повтор
    попытки исчерпаны → ConcurrencyConflict

Исключения из transform (бизнес-отказы) пробрасываются сразу, без повтора:
запись в этом случае не выполняется.

На каждой успешной записи meta.version увеличивается на 1, а meta.lastUpdated
получает текущее время; meta.version совпадает с версией транспорта.
"""

import time
from datetime import datetime
from typing import Callable, Generic, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from electionbot.core.contracts.validators import ContractValidator
from electionbot.core.domain.meta import utc_now
from electionbot.core.errors import ConcurrencyConflict
from electionbot.storage.transport import DocumentTransport
from electionbot.utils.logger import get_logger

logger = get_logger("storage")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 0.1

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")


class VersionedStateStore(Generic[M]):
    """
    Типизированное хранилище документов одной модели.

    Модель обязана иметь поле meta: DocumentMeta.
    """

    def __init__(
        self,
        transport: DocumentTransport,
        model: Type[M],
        contract: Optional[ContractValidator] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            transport: Внешнее хранилище документов
            model: Pydantic модель документа
            contract: JSON Schema контракт, проверяемый при чтении
            max_retries: Число попыток atomic_update
            backoff_seconds: Шаг линейной паузы между попытками
            sleep: Функция паузы (подменяется в тестах)
            clock: Источник времени для meta.lastUpdated
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        if backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be >= 0, got {backoff_seconds}")

        self.transport = transport
        self.model = model
        self.contract = contract
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._clock = clock

    # =========================================================================
    # СЕРИАЛИЗАЦИЯ
    # =========================================================================

    def _load(self, raw: dict, document_id: str) -> M:
        if self.contract is not None:
            self.contract.validate(raw, document_id)
        return self.model.model_validate(raw)

    @staticmethod
    def _dump(document: BaseModel) -> dict:
        return document.model_dump(mode="json", by_alias=True)

    def _stamp(self, document: M, version: int) -> M:
        """Новая meta: версия транспорта после записи + текущее время."""
        meta = document.meta.model_copy(update={"version": version, "last_updated": self._clock()})
        return document.model_copy(update={"meta": meta})

    # =========================================================================
    # CRUD
    # =========================================================================

    def get(self, document_id: str) -> Tuple[M, int]:
        """
        Чтение документа.

        Returns:
            (документ, версия транспорта)

        Raises:
            DocumentNotFound: Документа нет
            jsonschema.ValidationError: Документ нарушает контракт
        """
        raw, version = self.transport.get_document(document_id)
        return self._load(raw, document_id), version

    def create(self, document: M) -> Tuple[str, M]:
        """Создание документа (версия 1)."""
        stamped = self._stamp(document, 1)
        document_id = self.transport.create_document(self._dump(stamped))
        logger.debug("Created %s document %s", self.model.__name__, document_id)
        return document_id, stamped

    def delete(self, document_id: str) -> None:
        self.transport.delete_document(document_id)
        logger.debug("Deleted %s document %s", self.model.__name__, document_id)

    # =========================================================================
    # ATOMIC UPDATE
    # =========================================================================

    def atomic_update(self, document_id: str, transform: Callable[[M], M]) -> M:
        """
        Условное обновление документа с повтором при конфликте версии.

        Args:
            document_id: Документ
            transform: Чистая функция снапшот → новый снапшот.
                Может быть вызвана несколько раз (по разу на попытку).

        Returns:
            Записанный документ (с новой meta)

        Raises:
            ConcurrencyConflict: Все попытки завершились конфликтом
        """
        document, _ = self.atomic_update_with_result(
            document_id, lambda current: (transform(current), None)
        )
        return document

    def atomic_update_with_result(
        self,
        document_id: str,
        transform: Callable[[M], Tuple[M, R]],
    ) -> Tuple[M, R]:
        """
        atomic_update, где transform возвращает (новый документ, результат).

        Результат берётся из попытки, запись которой прошла.
        """
        for attempt in range(1, self.max_retries + 1):
            current, version = self.get(document_id)
            updated, result = transform(current)

            stamped = self._stamp(updated, version + 1)
            if self.transport.update_document(document_id, self._dump(stamped), version):
                if attempt > 1:
                    logger.info(
                        "%s %s updated on attempt %d",
                        self.model.__name__,
                        document_id,
                        attempt,
                    )
                return stamped, result

            logger.warning(
                "Version conflict on %s %s (attempt %d/%d, expected version %d)",
                self.model.__name__,
                document_id,
                attempt,
                self.max_retries,
                version,
            )
            if attempt < self.max_retries:
                self._sleep(self.backoff_seconds * attempt)

        logger.error(
            "Giving up on %s %s after %d conflicting attempts",
            self.model.__name__,
            document_id,
            self.max_retries,
        )
        raise ConcurrencyConflict(
            f"Failed to update {self.model.__name__} after {self.max_retries} attempts "
            "due to concurrent changes. Please try again.",
            document_id=document_id,
            attempts=self.max_retries,
        )
