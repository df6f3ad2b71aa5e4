"""Settlement: подсчёт голосов, победитель, ликвидация токенов, распределение казны."""

from .engine import EmptyVaultPolicy, SettlementEngine, SettlementResult

__all__ = [
    "SettlementEngine",
    "SettlementResult",
    "EmptyVaultPolicy",
]
