"""
Domain models and value objects.

Immutable pydantic модели документов (Election, Party, CommonData, VoteBook,
GuildIndex) и денежные единицы.
"""

from electionbot.core.domain.common_data import CommonData
from electionbot.core.domain.election import MAX_DURATION_HOURS, Election, ElectionStatus
from electionbot.core.domain.guild_index import GuildIndex, GuildIndexEntry
from electionbot.core.domain.meta import DocumentMeta, utc_now
from electionbot.core.domain.party import (
    MAX_TRANSACTION_HISTORY,
    BondTransaction,
    Party,
    TransactionType,
)
from electionbot.core.domain.units import (
    BASE_BALANCE,
    BASE_BALANCE_COINS,
    MICROCOINS_PER_COIN,
    MIN_TRANSFER_UNITS,
    coins_to_units,
    format_coins,
    units_to_coins,
)
from electionbot.core.domain.vote import Vote, VoteBook

__all__ = [
    # Units module
    "MICROCOINS_PER_COIN",
    "BASE_BALANCE_COINS",
    "BASE_BALANCE",
    "MIN_TRANSFER_UNITS",
    "coins_to_units",
    "units_to_coins",
    "format_coins",
    # Meta
    "DocumentMeta",
    "utc_now",
    # Party model
    "Party",
    "BondTransaction",
    "TransactionType",
    "MAX_TRANSACTION_HISTORY",
    # Election model
    "Election",
    "ElectionStatus",
    "MAX_DURATION_HOURS",
    # Ledger / votes / index
    "CommonData",
    "Vote",
    "VoteBook",
    "GuildIndex",
    "GuildIndexEntry",
]
