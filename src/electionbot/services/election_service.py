"""
ElectionService — команды бота над документами гильдии

Фронтенд (чат-команды) вызывает методы сервиса с уже разобранными аргументами:
guild_id, caller_id, имя партии, суммы в units. Каждая команда:
    1. читает снапшот и продвигает статус выборов по времени
    2. проверяет допуск (OperationGate) и бизнес-правила
    3. пишет изменения через atomic_update — ровно один вызов на документ

Порядок записей в командах с двумя документами:
    buy_bonds / create_bonds / transfer_to_party: списание CommonData → Election
    sell_bonds: Election → зачисление CommonData
    settle: финализация Election → зачисления CommonData
Отказ второй записи после успешной первой → PartialFailureError; бизнес-отказ
записи Election после списания компенсируется возвратом средств.
"""

import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from electionbot import ledger
from electionbot.config import BotConfig
from electionbot.core.domain.election import MAX_DURATION_HOURS, Election
from electionbot.core.domain.guild_index import GuildIndexEntry
from electionbot.core.domain.meta import utc_now
from electionbot.core.domain.party import Party
from electionbot.core.domain.units import (
    BASE_BALANCE,
    MICROCOINS_PER_COIN,
    format_coins,
)
from electionbot.core.domain.vote import Vote, VoteBook
from electionbot.core.errors import (
    ConcurrencyConflict,
    ElectionBotError,
    InsufficientFunds,
    PartialFailureError,
    PermissionDenied,
    ValidationError,
)
from electionbot.core.math.numerical_safeguards import ceil_to_units, safe_divide
from electionbot.crypto.verifier import (
    RsaPssSignatureVerifier,
    SignatureVerifier,
    generate_election_id,
)
from electionbot.lifecycle.gates import Operation, OperationGate
from electionbot.lifecycle.state_machine import ElectionLifecycle
from electionbot.market.bonding_curve_market import (
    BondingCurveMarket,
    BondPurchaseQuote,
    BondSaleQuote,
    CurvePoint,
    PricePoint,
)
from electionbot.settlement.engine import SettlementEngine, SettlementResult
from electionbot.storage.repository import GuildRepository
from electionbot.storage.transport import InMemoryTransport, JsonFileTransport
from electionbot.utils.logger import configure_logging, get_logger

logger = get_logger("service")

ADMIN_ROLE_NAME = "electionBotAdmin"

PARTY_NAME_PATTERN = re.compile(r"^[A-Za-z0-9 ]+$")
MAX_PARTY_NAME_LENGTH = 50
MAX_AGENDA_LENGTH = 500
MAX_HEADLINE_LENGTH = 100
MAX_CAMPAIGN_BODY_LENGTH = 1000

# Стоимость кампании: 1 монета за каждые 100 символов (минимум 1)
CAMPAIGN_CHARS_PER_COIN = 100

R = TypeVar("R")


# =============================================================================
# РЕЗУЛЬТАТЫ КОМАНД
# =============================================================================


@dataclass(frozen=True)
class JoinRequest:
    """Ожидающая подтверждения лидера заявка на вступление."""

    request_id: str
    guild_id: str
    user_id: str
    party_name: str
    leader_id: str
    requested_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class BalanceReport:
    """Баланс пользователя (все суммы в units)."""

    user_id: str
    base: int
    adjustment: int
    reserved: int
    available: int

    # partyName → токены
    token_holdings: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PartyListing:
    """Строка списка партий."""

    name: str
    emoji: str
    agenda: str
    leader_id: str
    members: Tuple[str, ...]
    vault: int
    pool: int
    issued_tokens: int
    sold_tokens: int

    # None, пока партия не создала бонды
    price: Optional[Decimal]


@dataclass(frozen=True)
class CampaignReceipt:
    party_name: str
    headline: str
    body: str
    cost: int
    vault_after: int


@dataclass(frozen=True)
class SettlementReport:
    """Итог settlement: расчёт и раскрытые голоса."""

    election_id: str
    result: SettlementResult
    votes: Tuple[Vote, ...]


# =============================================================================
# СЕРВИС
# =============================================================================


class ElectionService:
    """Оркестрация команд: хранилище + рынок + леджер + жизненный цикл + settlement."""

    def __init__(
        self,
        repository: GuildRepository,
        verifier: Optional[SignatureVerifier] = None,
        config: Optional[BotConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.verifier = verifier or RsaPssSignatureVerifier()
        self.config = config or BotConfig()
        self.clock = clock

        self.market = BondingCurveMarket()
        self.lifecycle = ElectionLifecycle()
        self.gate = OperationGate()
        self.settlement = SettlementEngine(
            empty_vault_policy=self.config.empty_vault_policy,
            admin_sink_user_id=self.config.admin_sink_user_id,
            lifecycle=self.lifecycle,
        )

        self._join_requests: Dict[str, JoinRequest] = {}
        self._join_lock = threading.Lock()

    # =========================================================================
    # ВСПОМОГАТЕЛЬНОЕ
    # =========================================================================

    def _admit(self, election: Election, operation: Operation, now: datetime) -> Election:
        """Продвижение статуса и проверка допуска команды."""
        current = self.lifecycle.advance(election, now)
        self.gate.require(operation, current.status)
        return current

    @staticmethod
    def _require_admin(is_admin: bool) -> None:
        if not is_admin:
            raise PermissionDenied(f"You need the `{ADMIN_ROLE_NAME}` role to use this command.")

    @staticmethod
    def _require_party(election: Election, party_name: str) -> Party:
        party = election.party(party_name)
        if party is None:
            raise ValidationError(f'Party "{party_name}" not found in this election.')
        return party

    def _snapshot(self, guild_id: str, operation: Operation) -> Election:
        return self._admit(self.repository.get_election(guild_id), operation, self.clock())

    def _partial_failure(
        self,
        command: str,
        completed_step: str,
        failed_step: str,
        error: Exception,
        context=None,
    ) -> PartialFailureError:
        logger.error(
            "%s: %s succeeded but %s failed: %s",
            command,
            completed_step,
            failed_step,
            error,
        )
        reason = getattr(error, "reason", str(error))
        return PartialFailureError(
            f"{command} partially failed: {completed_step} was applied, "
            f"but {failed_step} failed ({reason}). Reconciliation may be needed.",
            completed_step=completed_step,
            failed_step=failed_step,
            context=context,
        )

    def _debit(self, guild_id: str, user_id: str, amount: int, reserved: int) -> None:
        """Списание с личного баланса (первая запись команд со списанием)."""
        self.repository.update_common(
            guild_id,
            lambda common: (ledger.spend(common, user_id, amount, reserved=reserved), None),
        )

    def _update_after_debit(
        self,
        command: str,
        guild_id: str,
        user_id: str,
        amount: int,
        failed_step: str,
        transform: Callable[[Election], Tuple[Election, R]],
    ) -> Tuple[Election, R]:
        """
        Запись Election после списания.

        Бизнес-отказ на свежем снапшоте: запись не применена, списание
        компенсируется зачислением, наружу уходит исходная ошибка.
        Исчерпание попыток или сбой хранилища: PartialFailureError.
        """
        completed_step = f"ledger debit of {amount} units"
        try:
            return self.repository.update_election(guild_id, transform)
        except ConcurrencyConflict as e:
            raise self._partial_failure(command, completed_step, failed_step, e) from e
        except ElectionBotError as e:
            self._refund(command, guild_id, user_id, amount, failed_step, e)
            raise
        except Exception as e:
            raise self._partial_failure(command, completed_step, failed_step, e) from e

    def _refund(
        self,
        command: str,
        guild_id: str,
        user_id: str,
        amount: int,
        failed_step: str,
        error: ElectionBotError,
    ) -> None:
        try:
            self.repository.update_common(
                guild_id,
                lambda common: (ledger.credit(common, user_id, amount), None),
            )
        except Exception as refund_error:
            raise self._partial_failure(
                command,
                f"ledger debit of {amount} units",
                f"{failed_step} ({error.reason}) and refund",
                refund_error,
            ) from error

        logger.warning(
            "%s rejected after ledger debit (%s); refunded %d units to %s",
            command,
            error.reason,
            amount,
            user_id,
        )

    # =========================================================================
    # ВЫБОРЫ (ADMIN)
    # =========================================================================

    def create_election(
        self,
        guild_id: str,
        name: str,
        is_admin: bool,
        start_at: Optional[datetime] = None,
        duration_hours: Optional[float] = None,
    ) -> Election:
        """
        Создание выборов гильдии.

        Статус: running, если startAt <= now, иначе scheduled.
        """
        self._require_admin(is_admin)

        if not name or not name.strip():
            raise ValidationError("Election name is required.")

        duration = self.config.default_duration_hours if duration_hours is None else duration_hours
        if not 0 < duration <= MAX_DURATION_HOURS:
            raise ValidationError(
                f"Duration must be between 0 and {MAX_DURATION_HOURS:g} hours, got {duration:g}."
            )

        now = self.clock()
        start = start_at or now
        if start.tzinfo is None:
            raise ValidationError("Start time must be timezone-aware.")

        election = Election(
            election_id=generate_election_id(),
            name=name.strip(),
            guild_id=guild_id,
            created_at=now,
            start_at=start,
            duration_hours=duration,
            status=self.lifecycle.initial_status(start, now),
        )
        self.repository.create_election_documents(election)
        logger.info(
            "Election %s (%s) created for guild %s, status=%s",
            election.election_id,
            election.name,
            guild_id,
            election.status.value,
        )
        return self.repository.get_election(guild_id)

    def get_election(self, guild_id: str) -> Election:
        """Снапшот выборов с эффективным статусом."""
        return self.lifecycle.advance(self.repository.get_election(guild_id), self.clock())

    def delete_election(self, guild_id: str, is_admin: bool) -> GuildIndexEntry:
        """Удаление выборов и книги голосов. Леджер гильдии сохраняется."""
        self._require_admin(is_admin)
        return self.repository.delete_election_documents(guild_id)

    def reset_guild(self, guild_id: str, is_admin: bool) -> Optional[GuildIndexEntry]:
        """Сброс записи гильдии в индексе (документы остаются в хранилище)."""
        self._require_admin(is_admin)
        return self.repository.reset_guild(guild_id)

    def list_elections(self) -> Dict[str, GuildIndexEntry]:
        return {
            guild_id: entry
            for guild_id, entry in self.repository.list_entries().items()
            if entry.has_election
        }

    # =========================================================================
    # ПАРТИИ
    # =========================================================================

    def create_party(
        self,
        guild_id: str,
        user_id: str,
        name: str,
        emoji: str,
        agenda: str = "",
    ) -> Party:
        """Создание партии; создатель становится лидером и первым участником."""
        if not name or not PARTY_NAME_PATTERN.match(name):
            raise ValidationError("Party name can only contain letters, numbers, and spaces.")
        if len(name) > MAX_PARTY_NAME_LENGTH:
            raise ValidationError(f"Party name must be {MAX_PARTY_NAME_LENGTH} characters or less.")
        if not emoji:
            raise ValidationError("Party emoji is required.")
        if len(agenda) > MAX_AGENDA_LENGTH:
            raise ValidationError(f"Party agenda must be {MAX_AGENDA_LENGTH} characters or less.")

        def transform(election: Election) -> Tuple[Election, Party]:
            current = self._admit(election, Operation.CREATE_PARTY, self.clock())
            if current.party(name) is not None:
                raise ValidationError("Party name already exists in this election.")
            if current.party_of(user_id) is not None:
                raise ValidationError("You are already a member of another party in this election.")

            party = Party(name=name, emoji=emoji, agenda=agenda, leader_id=user_id, members=[user_id])
            return current.with_party(party), party

        _, party = self.repository.update_election(guild_id, transform)
        logger.info("Party %s created in guild %s by %s", name, guild_id, user_id)
        return party

    def request_join(self, guild_id: str, user_id: str, party_name: str) -> JoinRequest:
        """
        Заявка на вступление, адресованная лидеру партии.

        Заявка живёт join_request_timeout_seconds; после истечения подтверждение
        отклоняется без изменения состояния.
        """
        election = self._snapshot(guild_id, Operation.JOIN_PARTY)
        party = self._require_party(election, party_name)
        if election.party_of(user_id) is not None:
            raise ValidationError("You are already a member of a party in this election.")

        now = self.clock()
        request = JoinRequest(
            request_id=uuid.uuid4().hex,
            guild_id=guild_id,
            user_id=user_id,
            party_name=party_name,
            leader_id=party.leader_id,
            requested_at=now,
            expires_at=now + timedelta(seconds=self.config.join_request_timeout_seconds),
        )
        with self._join_lock:
            self._join_requests[request.request_id] = request
        logger.info("Join request %s: %s → %s (guild %s)", request.request_id, user_id, party_name, guild_id)
        return request

    def _pending_request(self, request_id: str) -> JoinRequest:
        now = self.clock()
        with self._join_lock:
            request = self._join_requests.get(request_id)
            if request is None:
                raise ValidationError("Join request not found.")
            if now >= request.expires_at:
                del self._join_requests[request_id]
                logger.info("Join request %s expired", request_id)
                raise ValidationError("Join request timed out.")
        return request

    def _discard_request(self, request_id: str) -> None:
        with self._join_lock:
            self._join_requests.pop(request_id, None)

    def pending_join_requests(self, guild_id: str) -> List[JoinRequest]:
        """Неистёкшие заявки гильдии."""
        now = self.clock()
        with self._join_lock:
            return [
                request
                for request in self._join_requests.values()
                if request.guild_id == guild_id and now < request.expires_at
            ]

    def approve_join(self, guild_id: str, leader_id: str, request_id: str) -> Party:
        """Подтверждение заявки лидером партии."""
        request = self._pending_request(request_id)
        if request.guild_id != guild_id:
            raise ValidationError("Join request not found.")

        def transform(election: Election) -> Tuple[Election, Party]:
            current = self._admit(election, Operation.JOIN_PARTY, self.clock())
            party = self._require_party(current, request.party_name)
            if not party.is_leader(leader_id):
                raise PermissionDenied("Only the party leader can approve join requests.")
            if current.party_of(request.user_id) is not None:
                raise ValidationError("User is already a member of a party in this election.")

            updated = party.model_copy(update={"members": [*party.members, request.user_id]})
            return current.with_party(updated), updated

        _, party = self.repository.update_election(guild_id, transform)
        self._discard_request(request_id)
        logger.info("%s joined party %s in guild %s", request.user_id, party.name, guild_id)
        return party

    def reject_join(self, guild_id: str, leader_id: str, request_id: str) -> JoinRequest:
        """Отклонение заявки лидером партии."""
        request = self._pending_request(request_id)
        if request.guild_id != guild_id:
            raise ValidationError("Join request not found.")

        party = self._require_party(self.get_election(guild_id), request.party_name)
        if not party.is_leader(leader_id):
            raise PermissionDenied("Only the party leader can reject join requests.")

        self._discard_request(request_id)
        return request

    def leave_party(self, guild_id: str, user_id: str) -> Party:
        """Выход из партии. Лидер выйти не может; токены остаются у пользователя."""

        def transform(election: Election) -> Tuple[Election, Party]:
            current = self._admit(election, Operation.LEAVE_PARTY, self.clock())
            party = current.party_of(user_id)
            if party is None:
                raise ValidationError("You are not a member of any party in this election.")
            if party.is_leader(user_id):
                raise ValidationError("Party leaders cannot leave their party. Delete the party instead.")

            updated = party.model_copy(update={"members": [m for m in party.members if m != user_id]})
            return current.with_party(updated), updated

        _, party = self.repository.update_election(guild_id, transform)
        logger.info("%s left party %s in guild %s", user_id, party.name, guild_id)
        return party

    def edit_party(
        self,
        guild_id: str,
        user_id: str,
        party_name: str,
        agenda: Optional[str] = None,
        emoji: Optional[str] = None,
    ) -> Party:
        """Изменение программы (и эмодзи) партии лидером или участником."""
        if agenda is not None and len(agenda) > MAX_AGENDA_LENGTH:
            raise ValidationError(f"Party agenda must be {MAX_AGENDA_LENGTH} characters or less.")
        if emoji is not None and not emoji:
            raise ValidationError("Party emoji cannot be empty.")

        def transform(election: Election) -> Tuple[Election, Party]:
            current = self._admit(election, Operation.EDIT_PARTY, self.clock())
            party = self._require_party(current, party_name)
            if not party.is_member(user_id) and not party.is_leader(user_id):
                raise PermissionDenied("Only party leaders and members can edit the party agenda.")

            update = {}
            if agenda is not None:
                update["agenda"] = agenda
            if emoji is not None:
                update["emoji"] = emoji
            updated = party.model_copy(update=update)
            return current.with_party(updated), updated

        _, party = self.repository.update_election(guild_id, transform)
        return party

    def delete_party(self, guild_id: str, user_id: str, party_name: str, is_admin: bool = False) -> Party:
        """
        Удаление партии лидером или администратором.

        Казна партии сгорает. Резерв кривой и токены держателей
        исчезают вместе с партией.
        """

        def transform(election: Election) -> Tuple[Election, Party]:
            current = self._admit(election, Operation.DELETE_PARTY, self.clock())
            party = self._require_party(current, party_name)
            if not party.is_leader(user_id) and not is_admin:
                raise PermissionDenied("Only party leaders or admins can delete parties.")
            return current.without_party(party_name), party

        _, party = self.repository.update_election(guild_id, transform)
        if party.vault > 0 or party.pool > 0:
            logger.warning(
                "Party %s deleted in guild %s: vault %s and pool %s coins burned",
                party_name,
                guild_id,
                format_coins(party.vault),
                format_coins(party.pool),
            )
        else:
            logger.info("Party %s deleted in guild %s", party_name, guild_id)
        return party

    def list_parties(self, guild_id: str) -> List[PartyListing]:
        election = self.get_election(guild_id)
        return [
            PartyListing(
                name=party.name,
                emoji=party.emoji,
                agenda=party.agenda,
                leader_id=party.leader_id,
                members=tuple(party.members),
                vault=party.vault,
                pool=party.pool,
                issued_tokens=party.issued_tokens,
                sold_tokens=party.sold_tokens,
                price=self.market.display_price(party) if party.has_bonds else None,
            )
            for party in election.parties.values()
        ]

    # =========================================================================
    # БОНДЫ
    # =========================================================================

    def create_bonds(
        self,
        guild_id: str,
        user_id: str,
        party_name: str,
        initial_pool: int,
        total_tokens: int,
        alpha: float,
    ) -> Party:
        """
        Создание бондов партии лидером.

        Начальный пул списывается с личного баланса лидера.
        """
        snapshot = self._snapshot(guild_id, Operation.CREATE_BONDS)
        party = self._require_party(snapshot, party_name)
        self.market.create_bond(party, user_id, initial_pool, total_tokens, alpha)

        self._debit(guild_id, user_id, initial_pool, snapshot.reserved_for(user_id))

        def transform(election: Election) -> Tuple[Election, Party]:
            current = self._admit(election, Operation.CREATE_BONDS, self.clock())

            def effect(held: Election) -> Tuple[Election, Party]:
                bonded = self.market.create_bond(
                    self._require_party(held, party_name), user_id, initial_pool, total_tokens, alpha
                )
                return held.with_party(bonded), bonded

            return ledger.escrow(current, user_id, initial_pool, effect)

        _, bonded = self._update_after_debit(
            "create_bonds", guild_id, user_id, initial_pool, "bond creation", transform
        )

        logger.info(
            "Bonds created for %s in guild %s: pool=%d tokens=%d alpha=%s k=%d",
            party_name,
            guild_id,
            bonded.pool,
            bonded.issued_tokens,
            bonded.alpha,
            bonded.k,
        )
        return bonded

    def buy_bonds(self, guild_id: str, user_id: str, party_name: str, coin_spend: int) -> BondPurchaseQuote:
        """
        Покупка токенов партии.

        Сначала списание с леджера, затем зачисление в пул/казну и выдача токенов.
        """
        snapshot = self._snapshot(guild_id, Operation.BUY_BONDS)
        self.market.quote_buy(self._require_party(snapshot, party_name), coin_spend)

        self._debit(guild_id, user_id, coin_spend, snapshot.reserved_for(user_id))

        def transform(election: Election) -> Tuple[Election, BondPurchaseQuote]:
            current = self._admit(election, Operation.BUY_BONDS, self.clock())

            def effect(held: Election) -> Tuple[Election, BondPurchaseQuote]:
                party, quote = self.market.buy(
                    self._require_party(held, party_name), user_id, coin_spend, now=self.clock()
                )
                return held.with_party(party), quote

            return ledger.escrow(current, user_id, coin_spend, effect)

        _, quote = self._update_after_debit(
            "buy_bonds", guild_id, user_id, coin_spend, "token purchase", transform
        )

        logger.info(
            "%s bought %d %s tokens for %d units (pool +%d, vault +%d)",
            user_id,
            quote.tokens_acquired,
            party_name,
            coin_spend,
            quote.pool_contribution,
            quote.vault_contribution,
        )
        return quote

    def sell_bonds(self, guild_id: str, user_id: str, party_name: str, tokens: int) -> BondSaleQuote:
        """
        Продажа токенов обратно в кривую.

        Сначала изменение пула (Election), затем зачисление на леджер.
        """

        def transform(election: Election) -> Tuple[Election, BondSaleQuote]:
            current = self._admit(election, Operation.SELL_BONDS, self.clock())
            party, quote = self.market.sell(
                self._require_party(current, party_name), user_id, tokens, now=self.clock()
            )
            return current.with_party(party), quote

        _, quote = self.repository.update_election(guild_id, transform)

        try:
            self.repository.update_common(
                guild_id,
                lambda common: (ledger.credit(common, user_id, quote.coins_refunded), None),
            )
        except Exception as e:
            raise self._partial_failure(
                "sell_bonds", f"sale of {tokens} tokens", f"ledger credit of {quote.coins_refunded} units", e, quote
            ) from e

        logger.info("%s sold %d %s tokens for %d units", user_id, tokens, party_name, quote.coins_refunded)
        return quote

    def bond_curve(self, guild_id: str, party_name: str, steps: int = 20) -> List[CurvePoint]:
        party = self._require_party(self.get_election(guild_id), party_name)
        return self.market.curve_points(party, steps)

    def price_history(self, guild_id: str, party_name: str) -> List[PricePoint]:
        party = self._require_party(self.get_election(guild_id), party_name)
        return self.market.price_history(party)

    # =========================================================================
    # КАЗНА ПАРТИИ
    # =========================================================================

    def transfer_to_party(self, guild_id: str, user_id: str, amount: int) -> Party:
        """Перевод с личного баланса в казну своей партии."""
        ledger.validate_transfer_amount(amount)

        snapshot = self._snapshot(guild_id, Operation.TRANSFER_TO_PARTY)
        if snapshot.party_of(user_id) is None:
            raise ValidationError("You must be a member of a party to transfer funds to it.")

        self._debit(guild_id, user_id, amount, snapshot.reserved_for(user_id))

        def transform(election: Election) -> Tuple[Election, Party]:
            current = self._admit(election, Operation.TRANSFER_TO_PARTY, self.clock())

            def effect(held: Election) -> Tuple[Election, Party]:
                party = held.party_of(user_id)
                if party is None:
                    raise ValidationError("You must be a member of a party to transfer funds to it.")
                funded = party.model_copy(update={"vault": party.vault + amount})
                return held.with_party(funded), funded

            return ledger.escrow(current, user_id, amount, effect)

        _, party = self._update_after_debit(
            "transfer_to_party", guild_id, user_id, amount, "party vault credit", transform
        )

        logger.info("%s transferred %d units to party %s", user_id, amount, party.name)
        return party

    def campaign(self, guild_id: str, user_id: str, party_name: str, headline: str, body: str) -> CampaignReceipt:
        """
        Публикация кампании; стоимость списывается из казны партии.

        Стоимость: max(1, ceil((len(headline) + len(body)) / 100)) монет.
        """
        if not headline or not body:
            raise ValidationError("Headline and body are required.")
        if len(headline) > MAX_HEADLINE_LENGTH:
            raise ValidationError(f"Headline must be {MAX_HEADLINE_LENGTH} characters or less.")
        if len(body) > MAX_CAMPAIGN_BODY_LENGTH:
            raise ValidationError(f"Campaign body must be {MAX_CAMPAIGN_BODY_LENGTH} characters or less.")

        cost = campaign_cost(headline, body)

        def transform(election: Election) -> Tuple[Election, Party]:
            current = self._admit(election, Operation.CAMPAIGN, self.clock())
            party = self._require_party(current, party_name)
            if not party.is_member(user_id):
                raise PermissionDenied("You must be a member of the party to campaign for it.")
            if party.vault < cost:
                raise InsufficientFunds(
                    f"Insufficient party vault funds. Required: {format_coins(cost, places=2)} coins, "
                    f"Available: {format_coins(party.vault, places=2)} coins",
                    available=party.vault,
                    required=cost,
                )
            charged = party.model_copy(update={"vault": party.vault - cost})
            return current.with_party(charged), charged

        _, party = self.repository.update_election(guild_id, transform)
        logger.info("Campaign by %s for %s cost %d units", user_id, party_name, cost)
        return CampaignReceipt(
            party_name=party_name, headline=headline, body=body, cost=cost, vault_after=party.vault
        )

    # =========================================================================
    # ГОЛОСОВАНИЕ
    # =========================================================================

    def register_voter(self, guild_id: str, user_id: str, public_key_pem: str) -> Election:
        """Регистрация публичного ключа избирателя (один раз на выборы)."""
        if not self.verifier.is_valid_public_key(public_key_pem):
            raise ValidationError("Invalid public key. Please provide a valid RSA public key in PEM format.")

        def transform(election: Election) -> Tuple[Election, None]:
            current = self._admit(election, Operation.REGISTER_VOTER, self.clock())
            if user_id in current.registered_voters:
                raise ValidationError("You are already registered to vote in this election.")
            voters = {**current.registered_voters, user_id: public_key_pem}
            return current.model_copy(update={"registered_voters": voters}), None

        election, _ = self.repository.update_election(guild_id, transform)
        logger.info("Voter %s registered in guild %s", user_id, guild_id)
        return election

    def cast_vote(self, guild_id: str, user_id: str, party_name: str, message: str, signature: str) -> Vote:
        """
        Подписанный голос за партию.

        message должен совпадать с именем партии; подпись проверяется
        зарегистрированным ключом избирателя. Повторный голос отклоняется.
        """
        if message != party_name:
            raise ValidationError("Signed message must match the party name exactly.")

        election = self._snapshot(guild_id, Operation.VOTE)
        public_key = election.registered_voters.get(user_id)
        if public_key is None:
            raise ValidationError("You must register your public key before voting.")
        self._require_party(election, party_name)

        if not self.verifier.verify(message, signature, public_key):
            raise ValidationError("Invalid signature. Please sign the party name with your registered key.")

        vote = Vote(voter_id=user_id, message=message, signature=signature, timestamp=self.clock())

        def transform(vote_book: VoteBook) -> Tuple[VoteBook, Vote]:
            if vote_book.has_voted(user_id):
                raise ValidationError("You have already voted in this election.")
            return vote_book.with_vote(vote), vote

        self.repository.update_vote_book(guild_id, transform)
        logger.info("Vote recorded for voter %s in guild %s", user_id, guild_id)
        return vote

    # =========================================================================
    # БАЛАНС
    # =========================================================================

    def check_balance(self, guild_id: str, user_id: str) -> BalanceReport:
        """Баланс пользователя с учётом резерва и токенов текущих выборов."""
        common = self.repository.get_common(guild_id)
        entry = self.repository.entry(guild_id)
        election = self.get_election(guild_id) if entry is not None and entry.has_election else None

        holdings = {}
        if election is not None:
            holdings = {
                name: party.holdings_of(user_id)
                for name, party in election.parties.items()
                if party.holdings_of(user_id) > 0
            }

        return BalanceReport(
            user_id=user_id,
            base=BASE_BALANCE,
            adjustment=common.delta_of(user_id),
            reserved=election.reserved_for(user_id) if election is not None else 0,
            available=ledger.available_balance(common, user_id, election),
            token_holdings=holdings,
        )

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    def settle(self, guild_id: str, is_admin: bool) -> SettlementReport:
        """
        Финализация выборов.

        1. Election: расчёт и финализация в одном transform
        2. CommonData: все корректировки балансов одним transform
        """
        self._require_admin(is_admin)

        vote_book = self.repository.get_vote_book(guild_id)

        def transform(election: Election) -> Tuple[Election, SettlementResult]:
            now = self.clock()
            current = self.lifecycle.advance(election, now)
            self.gate.require(Operation.SETTLE, current.status)
            return self.settlement.settle(current, vote_book.votes, now)

        finalized, result = self.repository.update_election(guild_id, transform)

        try:
            self.repository.update_common(
                guild_id,
                lambda common: (ledger.apply_deltas(common, result.balance_deltas), None),
            )
        except Exception as e:
            raise self._partial_failure(
                "settle", "election finalization", "ledger credits", e, result
            ) from e

        logger.info(
            "Election %s settled in guild %s: winner=%s, %d users credited",
            finalized.election_id,
            guild_id,
            result.winning_party,
            len(result.balance_deltas),
        )
        return SettlementReport(
            election_id=finalized.election_id,
            result=result,
            votes=tuple(vote_book.votes),
        )


# =============================================================================
# ФУНКЦИИ
# =============================================================================


def campaign_cost(headline: str, body: str) -> int:
    """
    Стоимость кампании в units.

    Examples:
        >>> campaign_cost("a", "b")
        1000000
        >>> campaign_cost("h" * 100, "b" * 101)
        3000000
    """
    coins = max(1, ceil_to_units(safe_divide(len(headline) + len(body), CAMPAIGN_CHARS_PER_COIN)))
    return coins * MICROCOINS_PER_COIN


def build_service(config: Optional[BotConfig] = None, verifier: Optional[SignatureVerifier] = None) -> ElectionService:
    """
    Сервис с транспортом по конфигурации.

    ELECTIONBOT_STATE_DIR задан → JsonFileTransport (id индекса запоминается
    в index.json рядом с документами), иначе InMemoryTransport.
    """
    config = config or BotConfig.from_env()
    configure_logging(config.log_level, config.log_file)

    if config.state_dir:
        transport = JsonFileTransport(Path(config.state_dir) / "documents")
        pointer_path = Path(config.state_dir) / "index.json"
    else:
        transport = InMemoryTransport()
        pointer_path = None

    repository = GuildRepository(
        transport,
        pointer_path=pointer_path,
        max_retries=config.atomic_update_max_retries,
        backoff_seconds=config.atomic_update_backoff_seconds,
    )
    return ElectionService(repository, verifier=verifier, config=config)
