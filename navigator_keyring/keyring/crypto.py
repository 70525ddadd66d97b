"""
Keyring Crypto — vault encryption, key derivation and signing.

``CryptoProvider`` is the contract the keyring controller depends on; it is
always injected (see ``KeyringConfig.encryptor``) so tests can swap in a
deterministic fake.

``EthCryptoProvider`` is the default implementation:
- Vault: scrypt(password, salt) → AES-256-GCM → versioned JSON blob
- Accounts: BIP-39 mnemonics, BIP-44 derivation, secp256k1 via eth-account

Security Note:
    Never log passwords, mnemonics, private keys or vault blobs.
"""
import os
import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Union
from collections.abc import Mapping

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from mnemonic import Mnemonic

from ..exceptions import CryptoError
from .typed_data import typed_signature_hash

logger = logging.getLogger("navigator.keyring")

# Required to use mnemonic derivation in eth-account
Account.enable_unaudited_hdwallet_features()

VAULT_VERSION = 1
NONCE_SIZE = 12  # 96-bit nonce
SALT_SIZE = 32
KEY_LENGTH = 32  # AES-256

DEFAULT_SCRYPT_N = 2 ** 14
DEFAULT_SCRYPT_R = 8
DEFAULT_SCRYPT_P = 1

DEFAULT_HD_PATH = "m/44'/60'/0'/0/{}"
MNEMONIC_STRENGTH = 128  # 12 words

WRONG_PASSPHRASE = "Key derivation failed - possibly wrong passphrase"


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _signature_hex(signed: Any) -> str:
    return "0x" + bytes(signed.signature).hex()


class CryptoProvider(ABC):
    """Cryptographic operations used by the keyring controller."""

    # ------------------------------------------------------------------
    # Vault encryption
    # ------------------------------------------------------------------

    @abstractmethod
    def encrypt(self, password: str, plaintext: bytes) -> str:
        """Encrypt the serialized keyrings under ``password``."""

    @abstractmethod
    def decrypt(self, password: str, blob: str) -> Union[bytes, bytearray]:
        """Decrypt a vault blob.

        Return a ``bytearray`` so the caller can zero the plaintext;
        ``bytes`` is accepted but stays in memory until collected.

        Raises:
            CryptoError: Wrong password or corrupted blob.
        """

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    @abstractmethod
    def generate_mnemonic(self) -> str:
        ...

    @abstractmethod
    def is_valid_mnemonic(self, phrase: str) -> bool:
        ...

    @abstractmethod
    def derive_account(
        self, mnemonic: str, index: int, hd_path: str = DEFAULT_HD_PATH
    ) -> tuple[str, bytes]:
        """Return ``(address, private_key)`` of the account at ``index``."""

    @abstractmethod
    def address_from_private_key(self, private_key: bytes) -> str:
        ...

    @abstractmethod
    def decrypt_keystore(
        self, keystore: Union[str, Mapping[str, Any]], password: str
    ) -> bytes:
        """Recover the private key from an encrypted JSON keystore."""

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    @abstractmethod
    def sign_hash(self, private_key: bytes, message_hash: bytes) -> str:
        ...

    @abstractmethod
    def sign_personal_message(self, private_key: bytes, data: bytes) -> str:
        ...

    @abstractmethod
    def sign_typed_data_v1(self, private_key: bytes, typed_data: list) -> str:
        ...

    @abstractmethod
    def sign_typed_data_v3(self, private_key: bytes, typed_data: dict) -> str:
        ...

    @abstractmethod
    def sign_transaction(
        self, private_key: bytes, transaction: Mapping[str, Any]
    ) -> Any:
        ...


class EthCryptoProvider(CryptoProvider):
    """Default provider: scrypt + AES-GCM vault, eth-account keys."""

    def __init__(
        self,
        scrypt_n: int = DEFAULT_SCRYPT_N,
        scrypt_r: int = DEFAULT_SCRYPT_R,
        scrypt_p: int = DEFAULT_SCRYPT_P,
    ) -> None:
        self.scrypt_n = scrypt_n
        self.scrypt_r = scrypt_r
        self.scrypt_p = scrypt_p
        self._mnemonic = Mnemonic("english")

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} scrypt(n={self.scrypt_n}, "
            f"r={self.scrypt_r}, p={self.scrypt_p})>"
        )

    # ------------------------------------------------------------------
    # Vault encryption
    # ------------------------------------------------------------------

    @staticmethod
    def derive_key(password: str, salt: bytes, n: int, r: int, p: int) -> bytes:
        """Derive a 32-byte vault key from the password using scrypt."""
        kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=n, r=r, p=p)
        return kdf.derive(password.encode("utf-8"))

    def encrypt(self, password: str, plaintext: bytes) -> str:
        """Encrypt plaintext into a self-describing vault blob.

        Format (JSON)::

            {"version": 1, "kdf": "scrypt",
             "kdfparams": {"salt", "n", "r", "p", "dklen"},
             "cipher": "aes-256-gcm", "iv": <b64>, "data": <b64 payload+tag>}
        """
        salt = os.urandom(SALT_SIZE)
        key = self.derive_key(
            password, salt, self.scrypt_n, self.scrypt_r, self.scrypt_p,
        )
        nonce = os.urandom(NONCE_SIZE)
        ct = AESGCM(key).encrypt(nonce, plaintext, None)
        return orjson.dumps({
            "version": VAULT_VERSION,
            "kdf": "scrypt",
            "kdfparams": {
                "salt": _b64encode(salt),
                "n": self.scrypt_n,
                "r": self.scrypt_r,
                "p": self.scrypt_p,
                "dklen": KEY_LENGTH,
            },
            "cipher": "aes-256-gcm",
            "iv": _b64encode(nonce),
            "data": _b64encode(ct),
        }).decode("utf-8")

    def decrypt(self, password: str, blob: str) -> bytearray:
        """Decrypt a vault blob using the parameters stored inside it."""
        try:
            payload = orjson.loads(blob)
            version = payload["version"]
            params = payload["kdfparams"]
            salt = base64.b64decode(params["salt"])
            nonce = base64.b64decode(payload["iv"])
            ct = base64.b64decode(payload["data"])
            n, r, p = params["n"], params["r"], params["p"]
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as err:
            raise CryptoError("Vault data is corrupted") from err
        if version != VAULT_VERSION:
            raise CryptoError(f"Unsupported vault version: {version}")
        try:
            key = self.derive_key(password, salt, n, r, p)
        except (TypeError, ValueError) as err:
            raise CryptoError("Vault data is corrupted") from err
        try:
            return bytearray(AESGCM(key).decrypt(nonce, ct, None))
        except InvalidTag as err:
            raise CryptoError("Incorrect password") from err
        except ValueError as err:
            # nonce of the wrong size
            raise CryptoError("Vault data is corrupted") from err

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def generate_mnemonic(self) -> str:
        return self._mnemonic.generate(strength=MNEMONIC_STRENGTH)

    def is_valid_mnemonic(self, phrase: str) -> bool:
        try:
            return self._mnemonic.check(phrase)
        except (ValueError, LookupError):
            return False

    def derive_account(
        self, mnemonic: str, index: int, hd_path: str = DEFAULT_HD_PATH
    ) -> tuple[str, bytes]:
        try:
            account = Account.from_mnemonic(
                mnemonic, account_path=hd_path.format(index)
            )
        except (ValueError, TypeError) as err:
            raise CryptoError(str(err)) from err
        return account.address.lower(), bytes(account.key)

    def address_from_private_key(self, private_key: bytes) -> str:
        try:
            return Account.from_key(private_key).address.lower()
        except (ValueError, TypeError) as err:
            raise CryptoError(str(err)) from err

    def decrypt_keystore(
        self, keystore: Union[str, Mapping[str, Any]], password: str
    ) -> bytes:
        try:
            return bytes(Account.decrypt(keystore, password))
        except ValueError as err:
            if "MAC mismatch" in str(err):
                raise CryptoError(WRONG_PASSPHRASE) from err
            raise CryptoError(str(err)) from err
        except (KeyError, TypeError) as err:
            raise CryptoError(f"Invalid keystore: {err}") from err

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_hash(self, private_key: bytes, message_hash: bytes) -> str:
        try:
            signed = Account.unsafe_sign_hash(message_hash, private_key)
        except (ValueError, TypeError) as err:
            raise CryptoError(str(err)) from err
        return _signature_hex(signed)

    def sign_personal_message(self, private_key: bytes, data: bytes) -> str:
        try:
            signed = Account.sign_message(
                encode_defunct(primitive=data), private_key
            )
        except (ValueError, TypeError) as err:
            raise CryptoError(str(err)) from err
        return _signature_hex(signed)

    def sign_typed_data_v1(self, private_key: bytes, typed_data: list) -> str:
        return self.sign_hash(private_key, typed_signature_hash(typed_data))

    def sign_typed_data_v3(self, private_key: bytes, typed_data: dict) -> str:
        try:
            signed = Account.sign_message(
                encode_typed_data(full_message=typed_data), private_key
            )
        except (ValueError, TypeError, KeyError) as err:
            raise CryptoError(str(err)) from err
        return _signature_hex(signed)

    def sign_transaction(
        self, private_key: bytes, transaction: Mapping[str, Any]
    ) -> Any:
        try:
            return Account.sign_transaction(dict(transaction), private_key)
        except (ValueError, TypeError, KeyError) as err:
            raise CryptoError(str(err)) from err
