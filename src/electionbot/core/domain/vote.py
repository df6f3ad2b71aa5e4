"""
Vote / VoteBook — подписанные голоса

VoteBook — приватный append-only документ с голосами выборов. Раскрывается
только при settlement.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .meta import DocumentMeta, utc_now


class Vote(BaseModel):
    """Подписанный голос. message должен совпадать с именем партии."""

    voter_id: str = Field(..., min_length=1, alias="voterId")
    message: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True, "populate_by_name": True}


class VoteBook(BaseModel):
    """Приватный список голосов выборов."""

    election_id: str = Field(..., min_length=1, alias="electionId")
    votes: list[Vote] = Field(default_factory=list)
    meta: DocumentMeta = Field(default_factory=DocumentMeta)

    model_config = {"frozen": True, "populate_by_name": True}

    def has_voted(self, voter_id: str) -> bool:
        return any(v.voter_id == voter_id for v in self.votes)

    def with_vote(self, vote: Vote) -> "VoteBook":
        return self.model_copy(update={"votes": [*self.votes, vote]})
