"""Reversible encryption of per-user S3 secret keys at rest.

Blobs are ``hex(iv) + ":" + hex(ciphertext)``, AES-256-CBC with PKCS7 padding.
The key is derived with scrypt (N=2**14, r=8, p=1) from the master secret and a
fixed salt, so it is stable across calls and processes sharing the secret.
"""
import binascii
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import DecryptionFailed, MalformedCiphertext

KDF_SALT = b"salt"
KEY_BYTES = 32
IV_BYTES = 16
DELIMITER = ":"


def derive_key(master_secret: str) -> bytes:
    kdf = Scrypt(salt=KDF_SALT, length=KEY_BYTES, n=2**14, r=8, p=1)
    return kdf.derive(master_secret.encode("utf-8"))


class CredentialCipher:
    def __init__(self, master_secret: str):
        if not master_secret:
            raise ValueError("master secret must not be empty")
        self._key = derive_key(master_secret)

    def __repr__(self) -> str:
        return "CredentialCipher(<redacted>)"

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_BYTES)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(data) + encryptor.finalize()
        return iv.hex() + DELIMITER + ciphertext.hex()

    def decrypt(self, blob: str) -> str:
        iv, ciphertext = self._split(blob)

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        data = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            plain = unpadder.update(data) + unpadder.finalize()
            return plain.decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            # bad padding or garbage bytes: the key does not match this blob
            raise DecryptionFailed()

    @staticmethod
    def _split(blob: str):
        if not isinstance(blob, str) or DELIMITER not in blob:
            raise MalformedCiphertext("Encrypted secret is missing the IV delimiter")

        iv_hex, ct_hex = blob.split(DELIMITER, 1)
        if len(iv_hex) != IV_BYTES * 2:
            raise MalformedCiphertext("Encrypted secret has an IV of the wrong length")
        try:
            iv = binascii.unhexlify(iv_hex)
            ciphertext = binascii.unhexlify(ct_hex)
        except (binascii.Error, ValueError):
            raise MalformedCiphertext("Encrypted secret is not valid hex")

        if not ciphertext or len(ciphertext) % IV_BYTES:
            raise MalformedCiphertext("Encrypted secret has a truncated ciphertext")
        return iv, ciphertext
