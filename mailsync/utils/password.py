from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from settings import settings


@lru_cache(maxsize=1)
def _cipher_suite() -> Fernet:
    return Fernet(settings.password_encryption_key.encode())


class PasswordUtils:
    """Encrypts and decrypts stored mailbox credentials."""

    @staticmethod
    def encrypt_password(password: str) -> str:
        return _cipher_suite().encrypt(password.encode()).decode()

    @staticmethod
    def decrypt_password(password: str) -> str:
        """Decrypt a stored credential. Raises ``ValueError`` if it was not encrypted with our key."""
        try:
            return _cipher_suite().decrypt(password.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Stored credential could not be decrypted") from e
