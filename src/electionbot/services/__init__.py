"""Командный слой: операции бота над документами гильдии."""

from .election_service import (
    BalanceReport,
    CampaignReceipt,
    ElectionService,
    JoinRequest,
    PartyListing,
    SettlementReport,
    build_service,
    campaign_cost,
)

__all__ = [
    "ElectionService",
    "build_service",
    "campaign_cost",
    "JoinRequest",
    "BalanceReport",
    "PartyListing",
    "CampaignReceipt",
    "SettlementReport",
]
