"""
CommonData — персистентный леджер гильдии

Хранит знаковые корректировки балансов пользователей. Доступная сумма
пользователя = BASE_BALANCE + balances[user] - reserved[user].
Документ переживает удаление выборов.
"""

from pydantic import BaseModel, Field

from .meta import DocumentMeta


class CommonData(BaseModel):
    """Леджер гильдии (общий для всех выборов)."""

    guild_id: str = Field(..., min_length=1, alias="guildId")
    balances: dict[str, int] = Field(
        default_factory=dict, description="userId → знаковая корректировка баланса (units)"
    )
    meta: DocumentMeta = Field(default_factory=DocumentMeta)

    model_config = {"frozen": True, "populate_by_name": True}

    def delta_of(self, user_id: str) -> int:
        return self.balances.get(user_id, 0)

    def with_deltas(self, deltas: dict[str, int]) -> "CommonData":
        """Новый леджер с применёнными корректировками (все в одном снапшоте)."""
        balances = dict(self.balances)
        for user_id, delta in deltas.items():
            balances[user_id] = balances.get(user_id, 0) + delta
        return self.model_copy(update={"balances": balances})
