"""Общие фикстуры: управляемые часы, сервис поверх in-memory хранилища."""

from datetime import datetime, timedelta, timezone

import pytest

from electionbot.config import BotConfig
from electionbot.services import ElectionService
from electionbot.storage import GuildRepository, InMemoryTransport


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Часы, которые двигаются только вручную."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class AcceptingVerifier:
    """Верификатор, принимающий подпись "valid:<message>"."""

    def verify(self, message: str, signature: str, public_key_pem: str) -> bool:
        return signature == f"valid:{message}"

    def is_valid_public_key(self, public_key_pem: str) -> bool:
        return public_key_pem.startswith("-----BEGIN PUBLIC KEY-----")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return GuildRepository(InMemoryTransport(), sleep=lambda _: None)


@pytest.fixture
def service(repository, clock):
    return ElectionService(
        repository,
        verifier=AcceptingVerifier(),
        config=BotConfig(),
        clock=clock,
    )


@pytest.fixture
def running_election(service):
    """Выборы гильдии g1, идут с T0 в течение 24 часов."""
    return service.create_election("g1", "Spring Election", is_admin=True)