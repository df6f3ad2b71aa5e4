"""
SettlementEngine — финализация выборов

Детерминированное отображение (голоса, снапшот выборов) → корректировки балансов.

АЛГОРИТМ:
    1. tally(votes): голоса по имени партии (vote.message), один голос на voterId
    2. determine_winner(tally): строго максимальное число голосов; ничья → победителя нет
    3. combined_pool = Σ pool по всем партиям
    4. Есть победитель:
        final_price = combined_pool / winner.issuedTokens
        держатель u получает floor(tokens[u] * final_price)
        непроданные токены победителя: floor(unsold * final_price) → vault победителя
       Пулы проигравших и их токены сгорают.
    5. Для каждой партии: vault // members каждому участнику, остаток сгорает;
       казна партии без участников сгорает (или уходит на admin sink).
    6. Все корректировки применяются к CommonData одним transform (вызывающий код).

Округление: все начисления — floor до целых units, поэтому сумма начислений
никогда не превышает распределяемую сумму.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable

from electionbot.core.domain.election import Election
from electionbot.core.domain.vote import Vote
from electionbot.core.math.numerical_safeguards import (
    floor_to_units,
    safe_divide,
    safe_multiply,
)
from electionbot.lifecycle.state_machine import ElectionLifecycle
from electionbot.utils.logger import get_logger

logger = get_logger("settlement")


class EmptyVaultPolicy(str, Enum):
    """Судьба казны партии без участников."""

    BURN = "burn"
    ADMIN = "admin"


@dataclass(frozen=True)
class SettlementResult:
    """Результат расчёта settlement (до записи в хранилище)."""

    winning_party: str | None
    tally: dict[str, int]
    combined_pool: int

    # units за токен; 0, если победителя нет
    final_price: Decimal

    # userId → начисление за токены победителя
    token_liquidations: dict[str, int] = field(default_factory=dict)

    # partyName → {userId → доля казны}
    vault_distributions: dict[str, dict[str, int]] = field(default_factory=dict)

    # userId → итоговая корректировка баланса (применяется к CommonData)
    balance_deltas: dict[str, int] = field(default_factory=dict)

    # partyName → сожжённая сумма (остатки деления, пустые партии, пулы проигравших)
    burned: dict[str, int] = field(default_factory=dict)

    @property
    def total_burned(self) -> int:
        return sum(self.burned.values())

    @property
    def total_credited(self) -> int:
        return sum(self.balance_deltas.values())


class SettlementEngine:
    """Подсчёт голосов, определение победителя, ликвидация и распределение казны."""

    def __init__(
        self,
        empty_vault_policy: EmptyVaultPolicy = EmptyVaultPolicy.BURN,
        admin_sink_user_id: str | None = None,
        lifecycle: ElectionLifecycle | None = None,
    ):
        """
        Args:
            empty_vault_policy: Что делать с казной партии без участников
            admin_sink_user_id: Получатель казны при политике ADMIN
            lifecycle: Машина состояний (для финализации)
        """
        if empty_vault_policy == EmptyVaultPolicy.ADMIN and not admin_sink_user_id:
            raise ValueError("admin_sink_user_id is required for the admin empty-vault policy")

        self.empty_vault_policy = empty_vault_policy
        self.admin_sink_user_id = admin_sink_user_id
        self.lifecycle = lifecycle or ElectionLifecycle()

    # =========================================================================
    # ГОЛОСА
    # =========================================================================

    def tally(self, votes: Iterable[Vote]) -> dict[str, int]:
        """
        Подсчёт голосов по имени партии.

        Учитывается первый голос каждого voterId; повторные записи
        того же избирателя игнорируются.
        """
        counted: set[str] = set()
        results: dict[str, int] = {}
        for vote in votes:
            if vote.voter_id in counted:
                continue
            counted.add(vote.voter_id)
            results[vote.message] = results.get(vote.message, 0) + 1
        return results

    def determine_winner(self, tally: dict[str, int]) -> str | None:
        """
        Партия со строго максимальным числом голосов.

        Examples:
            >>> SettlementEngine().determine_winner({"A": 3, "B": 1})
            'A'
            >>> SettlementEngine().determine_winner({"A": 2, "B": 2}) is None
            True
        """
        if not tally:
            return None

        max_votes = max(tally.values())
        if max_votes <= 0:
            return None

        leaders = [name for name, count in tally.items() if count == max_votes]
        if len(leaders) > 1:
            return None
        return leaders[0]

    # =========================================================================
    # РАСЧЁТ
    # =========================================================================

    def compute_settlement(self, election: Election, votes: Iterable[Vote]) -> SettlementResult:
        """
        Расчёт settlement для снапшота выборов.

        Чистая функция: снапшот не изменяется, хранилище не трогается.
        Голос за несуществующую партию учитывается в tally, но победителем
        такая партия не становится.
        """
        tally = self.tally(votes)
        winner = self.determine_winner(tally)
        if winner is not None and winner not in election.parties:
            logger.warning("Vote winner %r is not a registered party, no winner declared", winner)
            winner = None

        combined_pool = sum(party.pool for party in election.parties.values())

        deltas: dict[str, int] = {}
        token_liquidations: dict[str, int] = {}
        burned: dict[str, int] = {}
        vaults = {name: party.vault for name, party in election.parties.items()}
        final_price = Decimal(0)

        # Шаги 3-4: ликвидация токенов победителя
        if winner is not None:
            winning_party = election.parties[winner]
            if winning_party.issued_tokens > 0:
                final_price = safe_divide(combined_pool, winning_party.issued_tokens)

            for user_id, tokens in sorted(winning_party.token_holders.items()):
                value = floor_to_units(safe_multiply(tokens, final_price))
                token_liquidations[user_id] = value
                deltas[user_id] = deltas.get(user_id, 0) + value

            unsold = winning_party.issued_tokens - winning_party.sold_tokens
            if unsold > 0:
                vaults[winner] += floor_to_units(safe_multiply(unsold, final_price))

            liquidated = sum(token_liquidations.values()) + (vaults[winner] - winning_party.vault)
            if combined_pool - liquidated > 0:
                burned[winner] = combined_pool - liquidated
        elif combined_pool > 0:
            # Победителя нет: все пулы сгорают
            for name, party in election.parties.items():
                if party.pool > 0:
                    burned[name] = party.pool

        # Шаг 5: распределение казны
        vault_distributions: dict[str, dict[str, int]] = {}
        for name, party in election.parties.items():
            vault = vaults[name]
            if vault <= 0:
                continue

            if not party.members:
                if self.empty_vault_policy == EmptyVaultPolicy.ADMIN:
                    sink = self.admin_sink_user_id
                    vault_distributions[name] = {sink: vault}
                    deltas[sink] = deltas.get(sink, 0) + vault
                    logger.warning("Vault of %d units from empty party %s sent to admin %s", vault, name, sink)
                else:
                    burned[name] = burned.get(name, 0) + vault
                    logger.warning("Vault of %d units from empty party %s burned", vault, name)
                continue

            share = vault // len(party.members)
            remainder = vault - share * len(party.members)
            if share > 0:
                vault_distributions[name] = {member: share for member in party.members}
                for member in party.members:
                    deltas[member] = deltas.get(member, 0) + share
            if remainder > 0:
                burned[name] = burned.get(name, 0) + remainder

        result = SettlementResult(
            winning_party=winner,
            tally=tally,
            combined_pool=combined_pool,
            final_price=final_price,
            token_liquidations=token_liquidations,
            vault_distributions=vault_distributions,
            balance_deltas={user_id: delta for user_id, delta in deltas.items() if delta != 0},
            burned=burned,
        )

        logger.info(
            "Settlement computed for election %s: winner=%s combined_pool=%d credited=%d burned=%d",
            election.election_id,
            winner,
            combined_pool,
            result.total_credited,
            result.total_burned,
        )
        return result

    # =========================================================================
    # ФИНАЛИЗАЦИЯ
    # =========================================================================

    def finalize_election(self, election: Election, now: datetime) -> Election:
        """
        Снапшот финализированных выборов.

        Статус → finalized; у всех партий очищаются tokenHolders, soldTokens,
        pool и vault. Структура партий (имя, лидер, участники) сохраняется.

        Raises:
            AlreadySettled: Выборы уже финализированы
            ValidationError: Выборы ещё не закончились
        """
        finalized = self.lifecycle.finalize(election, now)

        parties = {
            name: party.model_copy(
                update={"token_holders": {}, "sold_tokens": 0, "pool": 0, "vault": 0}
            )
            for name, party in finalized.parties.items()
        }
        return finalized.model_copy(update={"parties": parties})

    def settle(
        self,
        election: Election,
        votes: Iterable[Vote],
        now: datetime,
    ) -> tuple[Election, SettlementResult]:
        """
        Расчёт и финализация за один вызов (для transform хранилища).

        Расчёт выполняется над тем же снапшотом, который финализируется,
        поэтому повторный вызов на finalized-снапшоте падает до расчёта.
        """
        finalized = self.finalize_election(election, now)
        current = self.lifecycle.advance(election, now)
        return finalized, self.compute_settlement(current, votes)
