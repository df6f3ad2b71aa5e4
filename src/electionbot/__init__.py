"""
ElectionBot — выборы гильдии с рынком бондов партий.

Ядро: кривая с постоянным инвариантом (market), леджер и эскроу (ledger),
жизненный цикл выборов (lifecycle), settlement, версионируемое хранилище
с optimistic concurrency (storage).
"""

__version__ = "0.1.0"
