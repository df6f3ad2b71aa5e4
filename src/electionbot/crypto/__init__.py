"""Проверка подписей голосов (внешний верификатор и RSA-PSS адаптер)."""

from .verifier import (
    RsaPssSignatureVerifier,
    SignatureVerifier,
    generate_election_id,
    generate_key_pair,
    sign_message,
)

__all__ = [
    "SignatureVerifier",
    "RsaPssSignatureVerifier",
    "sign_message",
    "generate_key_pair",
    "generate_election_id",
]
