"""WinZip AES (AE-1/AE-2) entry decryption backed by PyCryptodomex.

An AES entry's payload is ``salt + password verifier + ciphertext + auth code``.
Keys come from PBKDF2-HMAC-SHA1 over the password and salt; the ciphertext is
AES-CTR with a little-endian counter starting at 1, authenticated with a
truncated HMAC-SHA1 over the ciphertext.
"""

from __future__ import annotations

import hmac
import logging
from typing import Tuple, Union

from Cryptodome.Cipher import AES
from Cryptodome.Hash import HMAC, SHA1
from Cryptodome.Protocol.KDF import PBKDF2
from Cryptodome.Util import Counter

from .bounded import BoundedReader
from .errors import AuthenticationFailed, IncorrectPassword, UnsupportedEncryption


logger = logging.getLogger(__name__)

AES_KEY_LENGTHS = {1: 16, 2: 24, 3: 32}
AES_SALT_LENGTHS = {1: 8, 2: 12, 3: 16}
PASSWORD_VERIFIER_SIZE = 2
AUTH_CODE_SIZE = 10
PBKDF2_ITERATIONS = 1000


def _password_bytes(password: Union[str, bytes]) -> bytes:
    return password.encode("utf-8") if isinstance(password, str) else bytes(password)


def derive_keys(password: Union[str, bytes], salt: bytes, strength: int) -> Tuple[bytes, bytes, bytes]:
    """Returns: (aes_key, hmac_key, password_verifier)"""
    if strength not in AES_KEY_LENGTHS:
        raise UnsupportedEncryption(f"unsupported AES strength: {strength}")
    key_len = AES_KEY_LENGTHS[strength]
    material = PBKDF2(_password_bytes(password), salt, dkLen=2 * key_len + PASSWORD_VERIFIER_SIZE, count=PBKDF2_ITERATIONS)
    return material[:key_len], material[key_len : 2 * key_len], material[2 * key_len :]


def new_cipher(aes_key: bytes):
    return AES.new(aes_key, AES.MODE_CTR, counter=Counter.new(128, initial_value=1, little_endian=True))


class AesDecryptingReader:
    """Decrypts and authenticates an AES payload read from a bounded window.

    The auth code is checked before the final plaintext chunk is handed out.
    """

    def __init__(self, source: BoundedReader, aes_key: bytes, hmac_key: bytes, ciphertext_len: int):
        self._source = source
        self._cipher = new_cipher(aes_key)
        self._mac = HMAC.new(hmac_key, digestmod=SHA1)
        self.remaining = ciphertext_len
        self._verified = False

    @classmethod
    async def begin(cls, source: BoundedReader, password: Union[str, bytes], strength: int) -> "AesDecryptingReader":
        if strength not in AES_SALT_LENGTHS:
            raise UnsupportedEncryption(f"unsupported AES strength: {strength}")
        salt_len = AES_SALT_LENGTHS[strength]
        if source.remaining < salt_len + PASSWORD_VERIFIER_SIZE + AUTH_CODE_SIZE:
            raise AuthenticationFailed("Encrypted payload too short")
        salt = await source.read_exact(salt_len)
        verifier = await source.read_exact(PASSWORD_VERIFIER_SIZE)
        aes_key, hmac_key, expected = derive_keys(password, salt, strength)
        if not hmac.compare_digest(verifier, expected):
            raise IncorrectPassword("Incorrect password for encrypted entry")
        logger.debug("AES-%d key derived", AES_KEY_LENGTHS[strength] * 8)
        return cls(source, aes_key, hmac_key, source.remaining - AUTH_CODE_SIZE)

    async def read(self, n: int = -1) -> bytes:
        if n == 0:
            return b""
        if self.remaining <= 0:
            if not self._verified:
                await self._verify()
            return b""
        if n < 0 or n > self.remaining:
            n = self.remaining
        data = await self._source.read(n)
        self.remaining -= len(data)
        self._mac.update(data)
        plain = self._cipher.decrypt(data)
        if self.remaining == 0:
            await self._verify()
        return plain

    async def _verify(self) -> None:
        auth_code = await self._source.read_exact(AUTH_CODE_SIZE)
        if not hmac.compare_digest(auth_code, self._mac.digest()[:AUTH_CODE_SIZE]):
            raise AuthenticationFailed("AES authentication code mismatch; data corrupted or tampered")
        self._verified = True
