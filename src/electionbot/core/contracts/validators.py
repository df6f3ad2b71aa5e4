"""
Контракты документов хранилища

Документ, прочитанный из транспорта, проверяется JSON Schema контрактом своего
вида до разбора в pydantic модель. Нарушение сообщается с id документа и путём
до поля (parties.Green.pool), чтобы повреждённую запись можно было найти
в хранилище без отладчика.

Виды документов (схемы поставляются как package data в каталоге schema/):
    election     - снапшот выборов с партиями и бондами
    common_data  - персистентный леджер гильдии
    vote_book    - приватная книга голосов
    guild_index  - индекс документов по гильдиям
"""

import json
from enum import Enum
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, SchemaError, ValidationError
from jsonschema.exceptions import best_match


class DocumentKind(str, Enum):
    """Вид документа хранилища (имя файла схемы)."""

    ELECTION = "election"
    COMMON_DATA = "common_data"
    VOTE_BOOK = "vote_book"
    GUILD_INDEX = "guild_index"


# =============================================================================
# СХЕМЫ
# =============================================================================


@lru_cache(maxsize=None)
def load_contract(kind: DocumentKind) -> Dict[str, Any]:
    """
    JSON Schema документа из данных пакета (кэшируется на процесс).

    Raises:
        ValueError: Схема не проходит meta-валидацию Draft 2020-12
    """
    source = resources.files(__package__).joinpath("schema").joinpath(f"{kind.value}.json")
    schema = json.loads(source.read_text(encoding="utf-8"))

    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as e:
        raise ValueError(f"Invalid contract for {kind.value} documents: {e.message}") from e
    return schema


def field_path(error: ValidationError) -> str:
    """Путь до поля через точку; "$" для корня документа."""
    parts = [str(part) for part in error.absolute_path]
    return ".".join(parts) if parts else "$"


# =============================================================================
# ВАЛИДАТОР
# =============================================================================


class ContractValidator:
    """Проверка документов одного вида."""

    def __init__(self, kind: DocumentKind | str):
        self.kind = DocumentKind(kind)
        self._validator = Draft202012Validator(load_contract(self.kind))

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return self._validator.is_valid(data)

    def violations(self, data: Dict[str, Any]) -> List[str]:
        """Все нарушения вида "путь: сообщение", упорядоченные по пути."""
        errors = sorted(self._validator.iter_errors(data), key=field_path)
        return [f"{field_path(error)}: {error.message}" for error in errors]

    def validate(self, data: Dict[str, Any], document_id: Optional[str] = None) -> None:
        """
        Проверка документа.

        Из всех нарушений в сообщение попадает самое релевантное (best_match)
        и общее их число.

        Args:
            data: JSON документа в том виде, как он лежит в транспорте
            document_id: Id документа для сообщения об ошибке

        Raises:
            ValidationError: Документ нарушает контракт
        """
        errors = list(self._validator.iter_errors(data))
        if not errors:
            return

        error = best_match(errors)
        where = f"{self.kind.value} document {document_id}" if document_id else f"{self.kind.value} document"
        raise ValidationError(
            f"{where} violates its contract at {field_path(error)}: {error.message} "
            f"({len(errors)} violation(s) in total)"
        ) from error


@lru_cache(maxsize=None)
def contract_for(kind: DocumentKind | str) -> ContractValidator:
    """Общий валидатор вида документа."""
    return ContractValidator(kind)


def validate_document(kind: DocumentKind | str, data: Dict[str, Any], document_id: Optional[str] = None) -> None:
    contract_for(kind).validate(data, document_id)


__all__ = [
    "DocumentKind",
    "ContractValidator",
    "load_contract",
    "field_path",
    "contract_for",
    "validate_document",
    "ValidationError",
]
