"""Gas payer key at rest: Fernet encryption with a PBKDF2-derived key."""

import os
import base64
import logging
from typing import Tuple

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)


class KeyEncryption:
    """Encrypt and decrypt the relayer's private key under a master key."""

    # PBKDF2 iteration count
    ITERATIONS = 1_200_000

    def __init__(self, master_key: str):
        """
        Args:
            master_key: Master encryption key from environment
        """
        if not master_key:
            raise ValueError("Master encryption key is empty")
        self.master_key = master_key.encode()

    def encrypt(self, private_key: str) -> Tuple[bytes, bytes]:
        """
        Encrypt a private key under a fresh random salt.

        Returns:
            Tuple of (encrypted_key, salt)
        """
        salt = os.urandom(16)
        encrypted = self._derive_fernet(salt).encrypt(private_key.encode())
        return encrypted, salt

    def decrypt(self, encrypted_key: bytes, salt: bytes) -> str:
        """
        Decrypt a private key encrypted by ``encrypt``.

        Raises:
            ValueError: If the master key or salt does not match
        """
        try:
            return self._derive_fernet(salt).decrypt(encrypted_key).decode()
        except InvalidToken as e:
            raise ValueError("Gas payer key could not be decrypted with this master key") from e

    def _derive_fernet(self, salt: bytes) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(self.master_key))
        return Fernet(key)

    @staticmethod
    def generate_master_key() -> str:
        """Generate a new base64 master key."""
        return Fernet.generate_key().decode()


def load_gas_payer_key(app_settings) -> str:
    """
    Return the relayer private key from settings.

    A plain ``gas_payer_private_key`` wins. Otherwise the Fernet token in
    ``gas_payer_encrypted_key`` is decrypted with ``master_encryption_key``
    and the hex ``gas_payer_key_salt``.

    Raises:
        ValueError: If no usable key is configured
    """
    if app_settings.gas_payer_private_key:
        return app_settings.gas_payer_private_key

    if not app_settings.gas_payer_encrypted_key:
        raise ValueError("GAS_PAYER_PRIVATE_KEY not configured")

    if not app_settings.master_encryption_key or not app_settings.gas_payer_key_salt:
        raise ValueError(
            "GAS_PAYER_ENCRYPTED_KEY requires MASTER_ENCRYPTION_KEY and GAS_PAYER_KEY_SALT"
        )

    encryption = KeyEncryption(app_settings.master_encryption_key)
    salt = bytes.fromhex(app_settings.gas_payer_key_salt.removeprefix("0x"))
    logger.debug("Decrypting gas payer key")
    return encryption.decrypt(app_settings.gas_payer_encrypted_key.encode(), salt)
