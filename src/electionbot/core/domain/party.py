"""
Party — Модель партии и её бонд-рынка

Immutable Pydantic модель, представляющая партию внутри выборов:
- Идентификация и состав (name, emoji, agenda, leaderId, members)
- Казна (vault) — свободно расходуемые средства, не часть кривой
- Резерв кривой (pool), эмиссия (issuedTokens/soldTokens), alpha, инвариант k
- Держатели токенов (tokenHolders) и история сделок (transactions)

Инвариант при issuedTokens > 0: pool * (issuedTokens - soldTokens) ≈ k.
Партия с issuedTokens == 0 ещё не создала бонды — торговля запрещена.
"""

from datetime import datetime
from enum import Enum
from typing import Final

from pydantic import BaseModel, Field, field_validator, model_validator

from .meta import utc_now


# Сколько последних сделок хранится в документе
MAX_TRANSACTION_HISTORY: Final[int] = 200


# =============================================================================
# ENUMS
# =============================================================================


class TransactionType(str, Enum):
    """Тип сделки с бондами"""

    BUY = "buy"
    SELL = "sell"


# =============================================================================
# NESTED MODELS
# =============================================================================


class BondTransaction(BaseModel):
    """Запись о сделке с бондами партии (для истории цены)."""

    type: TransactionType = Field(..., description="buy / sell")
    user_id: str = Field(..., min_length=1, alias="userId")
    party_name: str = Field(..., min_length=1, alias="partyName")
    coins: int = Field(..., ge=0, description="Сумма, зачисленная в пул / возвращённая из пула (units)")
    tokens: int = Field(..., gt=0, description="Количество токенов в сделке")
    pool_after: int = Field(..., ge=0, alias="poolAfter")
    remaining_after: int = Field(..., gt=0, alias="remainingAfter")
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True, "populate_by_name": True}


# =============================================================================
# PARTY MODEL
# =============================================================================


class Party(BaseModel):
    """
    Модель партии.

    Immutable модель (frozen=True). Все изменения создают новый экземпляр
    через model_copy(update=...).
    """

    # Идентификация
    name: str = Field(..., min_length=1, max_length=50)
    emoji: str = Field(..., min_length=1)
    agenda: str = Field("", max_length=500)
    leader_id: str = Field(..., min_length=1, alias="leaderId")
    members: list[str] = Field(default_factory=list)

    # Средства
    vault: int = Field(0, ge=0, description="Казна партии (units)")
    pool: int = Field(0, ge=0, description="Резерв кривой (units)")

    # Параметры кривой
    issued_tokens: int = Field(0, ge=0, alias="issuedTokens")
    sold_tokens: int = Field(0, ge=0, alias="soldTokens")
    alpha: float = Field(0.0, ge=0.0, le=1.0, description="Доля покупки, идущая в pool")
    k: int = Field(0, ge=0, description="Инвариант pool * remaining, фиксируется при создании бондов")

    # Держатели и история
    token_holders: dict[str, int] = Field(default_factory=dict, alias="tokenHolders")
    transactions: list[BondTransaction] = Field(default_factory=list)

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("members")
    @classmethod
    def validate_unique_members(cls, v: list[str]) -> list[str]:
        """members — список с семантикой множества."""
        if len(set(v)) != len(v):
            raise ValueError("members must not contain duplicates")
        return v

    @field_validator("token_holders")
    @classmethod
    def validate_positive_holdings(cls, v: dict[str, int]) -> dict[str, int]:
        """Нулевые позиции удаляются, отрицательные недопустимы."""
        for user_id, tokens in v.items():
            if tokens <= 0:
                raise ValueError(f"token holding for {user_id} must be positive, got {tokens}")
        return v

    @model_validator(mode="after")
    def validate_supply(self) -> "Party":
        if self.sold_tokens > self.issued_tokens:
            raise ValueError(
                f"soldTokens {self.sold_tokens} exceeds issuedTokens {self.issued_tokens}"
            )
        return self

    @property
    def remaining_tokens(self) -> int:
        """Непроданные токены (issuedTokens - soldTokens)."""
        return self.issued_tokens - self.sold_tokens

    @property
    def has_bonds(self) -> bool:
        return self.issued_tokens > 0

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members

    def is_leader(self, user_id: str) -> bool:
        return self.leader_id == user_id

    def holdings_of(self, user_id: str) -> int:
        return self.token_holders.get(user_id, 0)

    def with_transaction(self, transaction: BondTransaction) -> "Party":
        """Новая партия с добавленной записью в историю (хранится хвост истории)."""
        history = [*self.transactions, transaction][-MAX_TRANSACTION_HISTORY:]
        return self.model_copy(update={"transactions": history})
