"""Fernet encryption for secrets kept on disk (OAuth tokens, client secret)."""

import stat
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from rockcast.utils.errors import EncryptionError


class CredentialEncryptor:
    """Symmetric encryption backed by a key file readable only by its owner.

    The key is generated on first use.
    """

    def __init__(self, key_path: Path) -> None:
        self.key_path = key_path
        self._cipher: Fernet | None = None

    def _load_or_create_key(self) -> bytes:
        if self.key_path.exists():
            self._validate_key_permissions()
            return self.key_path.read_bytes()

        key = Fernet.generate_key()
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        self.key_path.write_bytes(key)
        self.key_path.chmod(0o600)
        return key

    def _validate_key_permissions(self) -> None:
        """Refuse a key file that group or others can read or write.

        Raises:
            EncryptionError: If permissions are too open
        """
        mode = stat.S_IMODE(self.key_path.stat().st_mode)
        if mode & (stat.S_IRGRP | stat.S_IROTH | stat.S_IWGRP | stat.S_IWOTH):
            raise EncryptionError(
                f"Key file {self.key_path} has insecure permissions ({oct(mode)}). "
                f"Run: chmod 600 {self.key_path}"
            )

    @property
    def cipher(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(self._load_or_create_key())
        return self._cipher

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string into a URL-safe token.

        Raises:
            EncryptionError: If encryption fails
        """
        if not plaintext:
            return ""

        try:
            return self.cipher.encrypt(plaintext.encode("utf-8")).decode("utf-8")
        except EncryptionError:
            raise
        except Exception as e:
            raise EncryptionError(f"Failed to encrypt data: {e}") from e

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the token is corrupt or was made with another key
        """
        if not ciphertext:
            return ""

        try:
            return self.cipher.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except EncryptionError:
            raise
        except InvalidToken as e:
            raise EncryptionError(
                f"Failed to decrypt data: token is invalid for key {self.key_path}"
            ) from e
        except Exception as e:
            raise EncryptionError(f"Failed to decrypt data: {e}") from e
