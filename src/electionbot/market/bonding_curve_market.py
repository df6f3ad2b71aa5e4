"""BondingCurveMarket — ценообразование и исполнение сделок с токенами партии.

Инвариант кривой: pool * remaining = k, remaining = issuedTokens - soldTokens.

Поток средств:
- Покупка: coin_spend → pool (доля alpha) + vault (доля 1 - alpha); токены → покупателю
- Продажа: токены → обратно в непроданный остаток; coins_refunded ← pool

Интеграция:
- Ничего не знает о леджере и хранилище: принимает Party, возвращает новый Party
- Списание/зачисление личного баланса выполняет вызывающий код (ledger)
- Проверку статуса выборов выполняет OperationGate
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from electionbot.core.domain.meta import utc_now
from electionbot.core.domain.party import BondTransaction, Party, TransactionType
from electionbot.core.errors import (
    InsufficientSpend,
    InvalidAmount,
    NothingToRefund,
    PermissionDenied,
    ValidationError,
)
from electionbot.core.math import bonding_curve
from electionbot.core.math.numerical_safeguards import safe_multiply, validate_positive_integer


# Минимальная эмиссия: один токен всегда остаётся непроданным
MIN_ISSUED_TOKENS = 2


def _require_positive(value: int, name: str) -> None:
    try:
        validate_positive_integer(value, name)
    except ValueError as e:
        raise InvalidAmount(str(e)) from e


@dataclass(frozen=True)
class BondPurchaseQuote:
    """Расчёт покупки (до применения)."""

    coin_spend: int
    tokens_acquired: int
    pool_contribution: int
    vault_contribution: int
    new_pool: int
    new_remaining: int

    # Цена после сделки (units за токен, as-implemented k / remaining)
    new_price: Decimal


@dataclass(frozen=True)
class BondSaleQuote:
    """Расчёт продажи (до применения)."""

    tokens_sold: int
    coins_refunded: int
    new_pool: int
    new_remaining: int
    new_price: Decimal


@dataclass(frozen=True)
class CurvePoint:
    """Точка кривой: остаток → пул и цена."""

    remaining: int
    sold: int
    pool: int
    price: Decimal


@dataclass(frozen=True)
class PricePoint:
    """Цена после сделки из истории."""

    timestamp: datetime
    type: str
    tokens: int
    remaining: int
    price: Decimal


class BondingCurveMarket:
    """Рынок бондов партии над инвариантом pool * remaining = k.

    Stateless: все методы принимают снапшот партии и возвращают новый.
    """

    # =========================================================================
    # СОЗДАНИЕ БОНДОВ
    # =========================================================================

    def create_bond(
        self,
        party: Party,
        caller_id: str,
        initial_pool: int,
        total_tokens: int,
        alpha: float,
    ) -> Party:
        """Создание бондов партии (ровно один раз, только лидер).

        Args:
            party: партия без бондов (issuedTokens == 0)
            caller_id: инициатор (должен быть лидером)
            initial_pool: начальный резерв кривой (units)
            total_tokens: эмиссия токенов
            alpha: доля покупок, идущая в pool, [0, 1]

        Returns:
            Party с pool = initial_pool, k = initial_pool * total_tokens
        """
        if not party.is_leader(caller_id):
            raise PermissionDenied("Only the party leader can create bonds.")

        if party.has_bonds:
            raise ValidationError("Bonds already created for this party.")

        _require_positive(initial_pool, "Initial pool")

        if isinstance(total_tokens, bool) or not isinstance(total_tokens, int) or total_tokens < MIN_ISSUED_TOKENS:
            raise ValidationError(
                f"Tokens must be an integer >= {MIN_ISSUED_TOKENS}, got {total_tokens!r}"
            )

        if not 0.0 <= alpha <= 1.0:
            raise ValidationError(f"Alpha must be between 0 and 1, got {alpha}")

        return party.model_copy(
            update={
                "pool": initial_pool,
                "issued_tokens": total_tokens,
                "sold_tokens": 0,
                "alpha": float(alpha),
                "k": initial_pool * total_tokens,
                "token_holders": {},
            }
        )

    # =========================================================================
    # ПОКУПКА
    # =========================================================================

    def quote_buy(self, party: Party, coin_spend: int) -> BondPurchaseQuote:
        """Расчёт покупки токенов на coin_spend units."""
        self._require_bonds(party)

        _require_positive(coin_spend, "Coin spend")

        remaining = party.remaining_tokens
        if remaining <= 1:
            raise ValidationError("No tokens available for purchase.")

        pool_contribution, vault_contribution = bonding_curve.split_purchase(
            coin_spend, party.alpha
        )
        new_pool = party.pool + pool_contribution

        tokens_acquired = bonding_curve.tokens_for_pool_increase(party.k, remaining, new_pool)
        if tokens_acquired <= 0:
            raise InsufficientSpend("Insufficient coin spend to acquire tokens.")

        new_remaining = remaining - tokens_acquired
        return BondPurchaseQuote(
            coin_spend=coin_spend,
            tokens_acquired=tokens_acquired,
            pool_contribution=pool_contribution,
            vault_contribution=vault_contribution,
            new_pool=new_pool,
            new_remaining=new_remaining,
            new_price=bonding_curve.display_price(party.k, new_remaining),
        )

    def apply_buy(
        self,
        party: Party,
        buyer_id: str,
        quote: BondPurchaseQuote,
        now: datetime | None = None,
    ) -> Party:
        """Применение рассчитанной покупки к партии."""
        holders = dict(party.token_holders)
        holders[buyer_id] = holders.get(buyer_id, 0) + quote.tokens_acquired

        updated = party.model_copy(
            update={
                "pool": party.pool + quote.pool_contribution,
                "vault": party.vault + quote.vault_contribution,
                "sold_tokens": party.sold_tokens + quote.tokens_acquired,
                "token_holders": holders,
            }
        )
        return updated.with_transaction(
            BondTransaction(
                type=TransactionType.BUY,
                user_id=buyer_id,
                party_name=party.name,
                coins=quote.pool_contribution,
                tokens=quote.tokens_acquired,
                pool_after=updated.pool,
                remaining_after=updated.remaining_tokens,
                timestamp=now or utc_now(),
            )
        )

    def buy(
        self,
        party: Party,
        buyer_id: str,
        coin_spend: int,
        now: datetime | None = None,
    ) -> tuple[Party, BondPurchaseQuote]:
        """Расчёт и применение покупки за один вызов."""
        quote = self.quote_buy(party, coin_spend)
        return self.apply_buy(party, buyer_id, quote, now), quote

    # =========================================================================
    # ПРОДАЖА
    # =========================================================================

    def quote_sell(self, party: Party, tokens_to_sell: int, seller_holdings: int) -> BondSaleQuote:
        """Расчёт продажи tokens_to_sell токенов обратно в кривую.

        Ограничение: tokens_to_sell <= seller_holdings и <= soldTokens.
        Ограничения tokens_to_sell <= remaining нет.
        """
        self._require_bonds(party)

        _require_positive(tokens_to_sell, "Tokens to sell")

        if tokens_to_sell > seller_holdings:
            raise ValidationError(
                f"You only have {seller_holdings} tokens, cannot sell {tokens_to_sell}."
            )

        if tokens_to_sell > party.sold_tokens:
            raise ValidationError("Cannot sell more tokens than have been sold.")

        new_remaining = party.remaining_tokens + tokens_to_sell
        new_pool = bonding_curve.pool_for_remaining(party.k, new_remaining)
        coins_refunded = party.pool - new_pool

        if coins_refunded <= 0:
            raise NothingToRefund("Selling these tokens would not refund any coins.")

        return BondSaleQuote(
            tokens_sold=tokens_to_sell,
            coins_refunded=coins_refunded,
            new_pool=new_pool,
            new_remaining=new_remaining,
            new_price=bonding_curve.display_price(party.k, new_remaining),
        )

    def apply_sell(
        self,
        party: Party,
        seller_id: str,
        quote: BondSaleQuote,
        now: datetime | None = None,
    ) -> Party:
        """Применение рассчитанной продажи. Нулевая позиция удаляется."""
        holders = dict(party.token_holders)
        left = holders.get(seller_id, 0) - quote.tokens_sold
        if left > 0:
            holders[seller_id] = left
        else:
            holders.pop(seller_id, None)

        updated = party.model_copy(
            update={
                "pool": party.pool - quote.coins_refunded,
                "sold_tokens": party.sold_tokens - quote.tokens_sold,
                "token_holders": holders,
            }
        )
        return updated.with_transaction(
            BondTransaction(
                type=TransactionType.SELL,
                user_id=seller_id,
                party_name=party.name,
                coins=quote.coins_refunded,
                tokens=quote.tokens_sold,
                pool_after=updated.pool,
                remaining_after=updated.remaining_tokens,
                timestamp=now or utc_now(),
            )
        )

    def sell(
        self,
        party: Party,
        seller_id: str,
        tokens_to_sell: int,
        now: datetime | None = None,
    ) -> tuple[Party, BondSaleQuote]:
        """Расчёт и применение продажи за один вызов."""
        quote = self.quote_sell(party, tokens_to_sell, party.holdings_of(seller_id))
        return self.apply_sell(party, seller_id, quote, now), quote

    # =========================================================================
    # ОТОБРАЖЕНИЕ
    # =========================================================================

    def display_price(self, party: Party) -> Decimal:
        """Цена для отображения: k / remaining (units за токен).

        Это as-implemented формула: она равна pool, а не производной кривой.
        """
        self._require_bonds(party)
        return bonding_curve.display_price(party.k, party.remaining_tokens)

    def marginal_price(self, party: Party) -> Decimal:
        """Производная кривой k / remaining² (units за токен)."""
        self._require_bonds(party)
        return bonding_curve.marginal_price(party.k, party.remaining_tokens)

    def curve_points(self, party: Party, steps: int = 20) -> list[CurvePoint]:
        """Точки кривой от нулевых продаж до issued - 1 проданных токенов."""
        self._require_bonds(party)
        if steps < 2:
            raise ValueError(f"steps must be >= 2, got {steps}")

        max_sold = party.issued_tokens - 1
        points: list[CurvePoint] = []
        seen: set[int] = set()
        for i in range(steps):
            sold = int(safe_multiply(max_sold, i) / (steps - 1))
            if sold in seen:
                continue
            seen.add(sold)
            remaining = party.issued_tokens - sold
            points.append(
                CurvePoint(
                    remaining=remaining,
                    sold=sold,
                    pool=bonding_curve.pool_for_remaining(party.k, remaining),
                    price=bonding_curve.display_price(party.k, remaining),
                )
            )
        return points

    def price_history(self, party: Party) -> list[PricePoint]:
        """Цена после каждой записанной сделки (по возрастанию времени)."""
        return [
            PricePoint(
                timestamp=tx.timestamp,
                type=tx.type.value,
                tokens=tx.tokens,
                remaining=tx.remaining_after,
                price=bonding_curve.display_price(party.k, tx.remaining_after),
            )
            for tx in party.transactions
        ]

    @staticmethod
    def _require_bonds(party: Party) -> None:
        if not party.has_bonds:
            raise ValidationError("Party has not issued bonds yet.")
