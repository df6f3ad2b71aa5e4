"""
Errors — таксономия ошибок ядра

Каждая ошибка несёт человекочитаемую причину (reason), которая возвращается
вызывающему коду (front end) без изменений состояния, кроме PartialFailureError.

Иерархия:
    ElectionBotError
    ├── ValidationError          — некорректный ввод / нет выборов / неверный статус
    │   └── InvalidAmount        — неположительная сумма или ниже минимального номинала
    ├── PermissionDenied         — нет роли / членства / лидерства
    ├── InsufficientFunds        — доступного баланса не хватает
    ├── InsufficientSpend        — покупка не даёт ни одного токена
    ├── NothingToRefund          — продажа не возвращает ни одной единицы
    ├── AlreadySettled           — повторный settlement
    ├── DocumentNotFound         — документ отсутствует в хранилище
    ├── ConcurrencyConflict      — исчерпаны попытки atomic_update (безопасно повторить)
    └── PartialFailureError      — одна из двух связанных записей не прошла
"""

from typing import Any


class ElectionBotError(Exception):
    """Базовая ошибка ядра."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(ElectionBotError):
    """Некорректный ввод или недопустимое состояние выборов."""


class InvalidAmount(ValidationError):
    """Сумма неположительная или меньше минимального номинала."""


class PermissionDenied(ElectionBotError):
    """У вызывающего нет необходимой роли или членства."""


class InsufficientFunds(ElectionBotError):
    """Доступный баланс меньше требуемой суммы."""

    def __init__(self, reason: str, available: int = 0, required: int = 0):
        super().__init__(reason)
        self.available = available
        self.required = required


class InsufficientSpend(ElectionBotError):
    """Сумма покупки слишком мала, чтобы получить хотя бы один токен."""


class NothingToRefund(ElectionBotError):
    """Продажа токенов не возвращает ни одной денежной единицы."""


class AlreadySettled(ElectionBotError):
    """Выборы уже финализированы."""


class DocumentNotFound(ElectionBotError):
    """Документ не найден в хранилище."""


class ConcurrencyConflict(ElectionBotError):
    """
    Все попытки условной записи завершились конфликтом версий.

    Транзиентная ошибка: ни одна запись не применена, команду можно повторить.
    """

    def __init__(self, reason: str, document_id: str = "", attempts: int = 0):
        super().__init__(reason)
        self.document_id = document_id
        self.attempts = attempts


class PartialFailureError(ElectionBotError):
    """
    Первая из двух связанных записей применена, вторая — нет.

    Не является ни полным успехом, ни полным отказом: требуется сверка.

    Attributes:
        completed_step: Описание успешно применённой записи
        failed_step: Описание непримененной записи
        context: Вычисленные данные операции (например, SettlementResult)
    """

    def __init__(
        self,
        reason: str,
        completed_step: str,
        failed_step: str,
        context: Any = None,
    ):
        super().__init__(reason)
        self.completed_step = completed_step
        self.failed_step = failed_step
        self.context = context
