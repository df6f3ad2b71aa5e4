"""
Signature Verifier — проверка подписей голосов

Ядро не выполняет криптографию само: голос принимается, если внешний
верификатор вернул True для (message, signature, publicKeyPem).

RsaPssSignatureVerifier — адаптер на cryptography:
    RSA, PSS padding (MGF1-SHA256), SHA-256, подпись в base64.
При проверке длина соли определяется автоматически (PSS.AUTO).
"""

import base64
import binascii
import uuid
from typing import Protocol

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from electionbot.utils.logger import get_logger

logger = get_logger("crypto")


class SignatureVerifier(Protocol):
    """Интерфейс внешнего верификатора подписей."""

    def verify(self, message: str, signature: str, public_key_pem: str) -> bool:
        ...

    def is_valid_public_key(self, public_key_pem: str) -> bool:
        ...


class RsaPssSignatureVerifier:
    """RSA-PSS / SHA-256 верификатор."""

    def verify(self, message: str, signature: str, public_key_pem: str) -> bool:
        """
        Проверка подписи.

        Любая ошибка разбора ключа или подписи трактуется как неверная подпись.
        """
        try:
            public_key = serialization.load_pem_public_key(public_key_pem.encode("utf-8"))
            signature_bytes = base64.b64decode(signature, validate=True)
        except (ValueError, TypeError, binascii.Error, UnsupportedAlgorithm) as e:
            logger.info("Signature verification failed: %s", e)
            return False

        if not isinstance(public_key, rsa.RSAPublicKey):
            logger.info("Signature verification failed: public key is not RSA")
            return False

        try:
            public_key.verify(
                signature_bytes,
                message.encode("utf-8"),
                padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.AUTO),
                hashes.SHA256(),
            )
        except InvalidSignature:
            return False
        return True

    def is_valid_public_key(self, public_key_pem: str) -> bool:
        """PEM разбирается и содержит RSA-ключ."""
        try:
            public_key = serialization.load_pem_public_key(public_key_pem.encode("utf-8"))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            logger.info("Failed to parse public key: %s", e)
            return False
        return isinstance(public_key, rsa.RSAPublicKey)


def sign_message(message: str, private_key_pem: str) -> str:
    """
    Подпись сообщения приватным RSA-ключом (клиентская сторона голосования).

    Returns:
        Подпись в base64, принимаемая RsaPssSignatureVerifier
    """
    private_key = serialization.load_pem_private_key(private_key_pem.encode("utf-8"), password=None)
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise ValueError("Private key is not an RSA key")

    signature = private_key.sign(
        message.encode("utf-8"),
        padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.MAX_LENGTH),
        hashes.SHA256(),
    )
    return base64.b64encode(signature).decode("ascii")


def generate_key_pair(key_size: int = 2048) -> tuple[str, str]:
    """
    Новая пара RSA-ключей в PEM.

    Returns:
        (private_key_pem, public_key_pem)
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return private_pem, public_pem


def generate_election_id() -> str:
    return str(uuid.uuid4())
