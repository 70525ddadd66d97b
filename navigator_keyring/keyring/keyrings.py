"""
Keyrings — key-management strategies behind one account/signing API.

- ``HDKeyring``: accounts derived from a BIP-39 mnemonic (BIP-44 path)
- ``SimpleKeyring``: one account per imported raw private key

A keyring owns its secret material exclusively (as ``SecretBuffer``s).
``serialize()`` is the only way secrets leave it, and only to be
encrypted into the vault.

Security Note:
    Never log mnemonics or private keys. Only log types and addresses.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from collections.abc import Iterable, Mapping

from ..exceptions import CryptoError, NotFoundError, StateError
from .crypto import DEFAULT_HD_PATH, CryptoProvider
from .memory import SecretBuffer, wipe_on_error

logger = logging.getLogger("navigator.keyring")


class KeyringType(str, Enum):
    HD = "HD Key Tree"
    SIMPLE = "Simple Key Pair"


@dataclass(frozen=True)
class KeyringCheckpoint:
    """Account layout of a keyring at a point in time."""

    keys: dict[str, SecretBuffer]
    indexes: dict[str, int] = field(default_factory=dict)
    next_index: int = 0


def _wipe_missing(candidates: Iterable[SecretBuffer], keep: Iterable[SecretBuffer]) -> None:
    kept = {id(buffer) for buffer in keep}
    for buffer in candidates:
        if id(buffer) not in kept:
            buffer.wipe()


class Keyring(ABC):
    """Ordered set of accounts with their private keys."""

    type: KeyringType

    def __init__(self, provider: CryptoProvider) -> None:
        self._provider = provider
        self._keys: dict[str, SecretBuffer] = {}
        self._wiped = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} accounts={len(self._keys)}>"

    @property
    def accounts(self) -> list[str]:
        return list(self._keys)

    def has_account(self, address: str) -> bool:
        return address in self._keys

    def _key_for(self, address: str) -> SecretBuffer:
        if self._wiped:
            raise StateError("Keyring has been locked")
        try:
            return self._keys[address]
        except KeyError:
            raise NotFoundError(
                f"Address {address} not found in {self.type.value} keyring"
            ) from None

    def remove_account(self, address: str) -> None:
        self._key_for(address)
        del self._keys[address]

    def discard_account(self, address: str) -> None:
        """Remove ``address`` and wipe its key immediately."""
        buffer = self._key_for(address)
        self.remove_account(address)
        buffer.wipe()

    def export_account(self, address: str) -> str:
        """Return the private key of ``address`` as hex (no prefix)."""
        return self._key_for(address).reveal().hex()

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_message(self, address: str, message_hash: bytes) -> str:
        return self._provider.sign_hash(
            self._key_for(address).reveal(), message_hash
        )

    def sign_personal_message(self, address: str, data: bytes) -> str:
        return self._provider.sign_personal_message(
            self._key_for(address).reveal(), data
        )

    def sign_typed_data_v1(self, address: str, typed_data: list) -> str:
        return self._provider.sign_typed_data_v1(
            self._key_for(address).reveal(), typed_data
        )

    def sign_typed_data_v3(self, address: str, typed_data: dict) -> str:
        return self._provider.sign_typed_data_v3(
            self._key_for(address).reveal(), typed_data
        )

    def sign_transaction(self, address: str, transaction: Mapping[str, Any]) -> Any:
        return self._provider.sign_transaction(
            self._key_for(address).reveal(), transaction
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def checkpoint(self) -> KeyringCheckpoint:
        return KeyringCheckpoint(keys=dict(self._keys))

    def _restore(self, checkpoint: KeyringCheckpoint) -> None:
        self._keys = dict(checkpoint.keys)

    def rollback(self, checkpoint: KeyringCheckpoint) -> None:
        """Return to ``checkpoint``, wiping keys created since."""
        _wipe_missing(self._keys.values(), checkpoint.keys.values())
        self._restore(checkpoint)

    def release(self, checkpoint: KeyringCheckpoint) -> None:
        """Wipe keys held at ``checkpoint`` that are no longer in use."""
        _wipe_missing(checkpoint.keys.values(), self._keys.values())

    def wipe(self) -> None:
        """Zero and drop all secret material."""
        for buffer in self._keys.values():
            buffer.wipe()
        self._keys.clear()
        self._wiped = True

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @abstractmethod
    def serialize(self) -> dict[str, Any]:
        ...

    @classmethod
    @abstractmethod
    def deserialize(cls, provider: CryptoProvider, data: Mapping[str, Any]) -> "Keyring":
        ...


class HDKeyring(Keyring):
    """Hierarchical deterministic keyring (BIP-39 mnemonic, BIP-44 paths).

    Derivation indexes are tracked per account, so an account removed from
    the middle of the tree stays removed after the vault is restored.
    """

    type = KeyringType.HD

    def __init__(
        self,
        provider: CryptoProvider,
        mnemonic: str,
        hd_path: str = DEFAULT_HD_PATH,
        indexes: Optional[Iterable[int]] = None,
        next_index: int = 0,
    ) -> None:
        super().__init__(provider)
        self._mnemonic = SecretBuffer(mnemonic)
        self._hd_path = hd_path
        self._indexes: dict[str, int] = {}
        self._next_index = next_index
        with wipe_on_error(self):
            for index in indexes or ():
                self._derive(index)

    @property
    def mnemonic(self) -> str:
        if self._mnemonic.wiped:
            raise StateError("Keyring has been locked")
        return self._mnemonic.reveal_str()

    def _derive(self, index: int) -> str:
        address, private_key = self._provider.derive_account(
            self.mnemonic, index, self._hd_path
        )
        self._keys[address] = SecretBuffer(private_key)
        self._indexes[address] = index
        self._next_index = max(self._next_index, index + 1)
        return address

    def add_accounts(self, count: int = 1) -> list[str]:
        """Derive the next ``count`` accounts of the tree."""
        return [self._derive(self._next_index) for _ in range(count)]

    def remove_account(self, address: str) -> None:
        super().remove_account(address)
        del self._indexes[address]

    def checkpoint(self) -> KeyringCheckpoint:
        return KeyringCheckpoint(
            keys=dict(self._keys),
            indexes=dict(self._indexes),
            next_index=self._next_index,
        )

    def _restore(self, checkpoint: KeyringCheckpoint) -> None:
        super()._restore(checkpoint)
        self._indexes = dict(checkpoint.indexes)
        self._next_index = checkpoint.next_index

    def wipe(self) -> None:
        super().wipe()
        self._mnemonic.wipe()
        self._indexes.clear()

    def serialize(self) -> dict[str, Any]:
        return {
            "mnemonic": self.mnemonic,
            "hd_path": self._hd_path,
            "indexes": [self._indexes[address] for address in self._keys],
            "next_index": self._next_index,
        }

    @classmethod
    def deserialize(cls, provider: CryptoProvider, data: Mapping[str, Any]) -> "HDKeyring":
        return cls(
            provider,
            data["mnemonic"],
            hd_path=data.get("hd_path", DEFAULT_HD_PATH),
            indexes=data.get("indexes", ()),
            next_index=data.get("next_index", 0),
        )


class SimpleKeyring(Keyring):
    """Keyring of independently imported private keys."""

    type = KeyringType.SIMPLE

    def __init__(
        self, provider: CryptoProvider, private_keys: Iterable[bytes] = ()
    ) -> None:
        super().__init__(provider)
        with wipe_on_error(self):
            for private_key in private_keys:
                address = provider.address_from_private_key(private_key)
                if address not in self._keys:
                    self._keys[address] = SecretBuffer(private_key)

    def serialize(self) -> dict[str, Any]:
        return {
            "private_keys": [
                buffer.reveal().hex() for buffer in self._keys.values()
            ],
        }

    @classmethod
    def deserialize(cls, provider: CryptoProvider, data: Mapping[str, Any]) -> "SimpleKeyring":
        return cls(
            provider,
            [bytes.fromhex(key) for key in data.get("private_keys", ())],
        )


KEYRING_CLASSES: dict[KeyringType, type[Keyring]] = {
    KeyringType.HD: HDKeyring,
    KeyringType.SIMPLE: SimpleKeyring,
}


def keyring_from_vault(provider: CryptoProvider, entry: Mapping[str, Any]) -> Keyring:
    """Rebuild a keyring from one decrypted vault entry."""
    try:
        keyring_type = KeyringType(entry["type"])
    except (KeyError, TypeError, ValueError) as err:
        raise CryptoError("Unknown keyring type in vault") from err
    try:
        keyring = KEYRING_CLASSES[keyring_type].deserialize(provider, entry["data"])
    except (KeyError, TypeError, ValueError) as err:
        raise CryptoError("Vault data is corrupted") from err
    logger.debug(
        "Restored %s keyring with %d account(s)",
        keyring_type.value, len(keyring.accounts),
    )
    return keyring
