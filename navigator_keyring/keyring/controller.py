"""
KeyringController — password-encrypted vault of keyrings.

Provides the public API of the keyring subsystem:
- ``create_new_vault_and_keychain()`` / ``create_new_vault_and_restore()``
- ``submit_password()`` / ``set_locked()`` — unlock and lock the vault
- ``add_new_account()`` / ``import_account_with_strategy()`` /
  ``remove_account()`` / ``get_accounts()``
- ``export_seed_phrase()`` / ``export_account()``
- ``sign_message()`` / ``sign_personal_message()`` /
  ``sign_typed_message()`` / ``sign_transaction()``

Every mutating operation follows the same steps: validate, derive or
locate, delegate crypto work to the provider, mutate the keyring list,
re-encrypt the vault and publish the new public state. A failure in any
step leaves keyrings and vault exactly as they were.

Security Note:
    Never log passwords, mnemonics, private keys or the vault blob.
    Secret material lives in memory only while unlocked and is zeroed
    on lock (see ``memory.SecretBuffer``).
"""
import asyncio
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Optional, Union
from collections.abc import Iterator, Mapping, Sequence

import orjson

from ..base import BaseController
from ..exceptions import (
    TYPED_MESSAGE_ERROR_PREFIX,
    CryptoError,
    NotFoundError,
    StateError,
    TypedMessageError,
    ValidationError,
)
from .config import KeyringConfig
from .keyrings import (
    KEYRING_CLASSES,
    HDKeyring,
    Keyring,
    SimpleKeyring,
    keyring_from_vault,
)
from .memory import SecretBuffer, wipe_on_error
from .typed_data import parse_typed_data_v3, typed_signature_hash
from .validation import (
    message_data,
    message_hash,
    normalize_address,
    parse_keystore_args,
    parse_private_key,
    validate_password,
    validate_sign_params,
)

logger = logging.getLogger("navigator.keyring")


class ImportStrategy(str, Enum):
    PRIVATE_KEY = "privateKey"
    JSON = "json"


class TypedMessageVersion(str, Enum):
    V1 = "V1"
    V3 = "V3"


class KeyringController(BaseController):
    """Owns the keyrings, the encrypted vault and the lock state.

    Public state::

        {"is_unlocked": bool,
         "keyring_types": ["HD Key Tree", "Simple Key Pair"],
         "keyrings": [{"index": 0, "type": "HD Key Tree", "accounts": [...]}]}

    Calls are serialized by an internal ``asyncio.Lock``, so two
    concurrent operations never interleave their persist/publish steps.
    """

    name = "KeyringController"
    default_state: dict[str, Any] = {
        "is_unlocked": False,
        "keyring_types": [keyring_type.value for keyring_type in KEYRING_CLASSES],
        "keyrings": [],
    }

    def __init__(
        self,
        config: Union[KeyringConfig, Mapping[str, Any], None] = None,
    ) -> None:
        if config is None:
            config = KeyringConfig()
        elif not isinstance(config, KeyringConfig):
            config = KeyringConfig(**config)
        self.config = config
        self._encryptor = config.encryptor
        self._keyrings: list[Keyring] = []
        self._password: Optional[SecretBuffer] = None
        self._vault: Optional[str] = None
        self._lock = asyncio.Lock()
        super().__init__()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def is_unlocked(self) -> bool:
        return bool(self._keyrings)

    def _assert_unlocked(self) -> None:
        if not self._keyrings:
            raise StateError("KeyringController is locked")

    def _public_state(self) -> dict[str, Any]:
        return {
            "is_unlocked": self.is_unlocked(),
            "keyring_types": [t.value for t in KEYRING_CLASSES],
            "keyrings": [
                {
                    "index": index,
                    "type": keyring.type.value,
                    "accounts": keyring.accounts,
                }
                for index, keyring in enumerate(self._keyrings)
            ],
        }

    def full_update(self) -> dict[str, Any]:
        """Publish the public state to subscribers and return a snapshot."""
        self.update(self._public_state(), overwrite=True)
        return self.state

    def _primary_keyring(self) -> HDKeyring:
        if not self._keyrings or not isinstance(self._keyrings[0], HDKeyring):
            raise StateError("No primary keyring found")
        return self._keyrings[0]

    def _keyring_for_account(self, address: str) -> Keyring:
        for keyring in self._keyrings:
            if keyring.has_account(address):
                return keyring
        raise NotFoundError(
            f"No keyring found for the requested account {address}"
        )

    def _owned_elsewhere(self, keyring: Keyring, address: str) -> bool:
        return any(
            other is not keyring and other.has_account(address)
            for other in self._keyrings
        )

    def _check_for_duplicate(self, keyring: Keyring) -> None:
        for address in keyring.accounts:
            if self._owned_elsewhere(keyring, address):
                raise ValidationError(
                    "The account you are trying to import is a duplicate"
                )

    def _set_password(self, password: Optional[SecretBuffer]) -> None:
        if self._password is not None and self._password is not password:
            self._password.wipe()
        self._password = password

    def _wipe_keyrings(self) -> None:
        for keyring in self._keyrings:
            keyring.wipe()
        self._keyrings = []

    # ------------------------------------------------------------------
    # Vault helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Make keyring mutations all-or-nothing.

        On error the keyring list and every keyring's accounts return to
        their previous layout and secrets created in between are wiped.
        On success secrets that are no longer referenced are wiped.
        """
        keyrings = list(self._keyrings)
        checkpoints = [(keyring, keyring.checkpoint()) for keyring in keyrings]
        try:
            yield
        except BaseException:
            for keyring in self._keyrings:
                if keyring not in keyrings:
                    keyring.wipe()
            self._keyrings = keyrings
            for keyring, checkpoint in checkpoints:
                keyring.rollback(checkpoint)
            raise
        for keyring in keyrings:
            if keyring not in self._keyrings:
                keyring.wipe()
        for keyring, checkpoint in checkpoints:
            keyring.release(checkpoint)

    async def _persist_all_keyrings(self, password: SecretBuffer) -> None:
        """Serialize every keyring and re-encrypt the vault."""
        serialized = [
            {"type": keyring.type.value, "data": keyring.serialize()}
            for keyring in self._keyrings
        ]
        with SecretBuffer(orjson.dumps(serialized)) as plaintext:
            self._vault = await asyncio.to_thread(
                self._encryptor.encrypt, password.reveal_str(), plaintext.reveal(),
            )
        logger.debug("Vault persisted with %d keyring(s)", len(self._keyrings))

    async def _decrypt_vault(self, password: Any) -> SecretBuffer:
        if self._vault is None:
            raise StateError("Cannot unlock without a previous vault.")
        if not password or not isinstance(password, str):
            raise CryptoError("Incorrect password")
        decrypted = await asyncio.to_thread(
            self._encryptor.decrypt, password, self._vault,
        )
        return SecretBuffer.take(decrypted)

    async def _unlock_keyrings(self, password: str) -> list[Keyring]:
        plaintext = await self._decrypt_vault(password)
        with plaintext:
            try:
                entries = orjson.loads(plaintext.reveal())
            except orjson.JSONDecodeError as err:
                raise CryptoError("Vault data is corrupted") from err
        keyrings: list[Keyring] = []
        try:
            for entry in entries:
                keyrings.append(keyring_from_vault(self._encryptor, entry))
        except BaseException:
            for keyring in keyrings:
                keyring.wipe()
            raise
        return keyrings

    async def _create_vault(self, password: str, mnemonic: str) -> dict[str, Any]:
        new_password = SecretBuffer(password)
        with wipe_on_error(new_password), self._transaction():
            keyring = HDKeyring(
                self._encryptor, mnemonic, hd_path=self.config.hd_path,
            )
            self._keyrings = [keyring]
            keyring.add_accounts(1)
            await self._persist_all_keyrings(new_password)
        self._set_password(new_password)
        logger.info("Created new vault")
        return self.full_update()

    # ------------------------------------------------------------------
    # Vault lifecycle
    # ------------------------------------------------------------------

    async def create_new_vault_and_keychain(self, password: str) -> dict[str, Any]:
        """Create a vault holding one fresh HD keyring with one account.

        Args:
            password: Password the vault is encrypted with.

        Returns:
            The new public state.

        Raises:
            ValidationError: If the password is empty.
        """
        validate_password(password)
        async with self._lock:
            with SecretBuffer(self._encryptor.generate_mnemonic()) as mnemonic:
                return await self._create_vault(password, mnemonic.reveal_str())

    async def create_new_vault_and_restore(
        self, password: str, seed_phrase: str
    ) -> dict[str, Any]:
        """Create a vault whose HD keyring is restored from ``seed_phrase``.

        Raises:
            ValidationError: If the password is empty or the seed phrase is
                not a valid BIP-39 mnemonic.
        """
        validate_password(password)
        if not isinstance(seed_phrase, str):
            raise ValidationError("Seed phrase is invalid.")
        seed_phrase = " ".join(seed_phrase.split())
        if not self._encryptor.is_valid_mnemonic(seed_phrase):
            raise ValidationError("Seed phrase is invalid.")
        async with self._lock:
            return await self._create_vault(password, seed_phrase)

    async def submit_password(self, password: str) -> dict[str, Any]:
        """Decrypt the vault and unlock its keyrings.

        Raises:
            StateError: If no vault has been created yet.
            CryptoError: If the password is wrong; the controller stays locked.
        """
        async with self._lock:
            keyrings = await self._unlock_keyrings(password)
            self._wipe_keyrings()
            self._keyrings = keyrings
            self._set_password(SecretBuffer(password))
            logger.info("Vault unlocked: %d keyring(s)", len(keyrings))
            return self.full_update()

    async def set_locked(self) -> dict[str, Any]:
        """Wipe all in-memory secrets. The vault itself is kept."""
        async with self._lock:
            self._wipe_keyrings()
            self._set_password(None)
            logger.info("Vault locked")
            return self.full_update()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def add_new_account(self) -> dict[str, Any]:
        """Derive the next account of the primary keyring.

        Indexes whose address is already held by an imported keyring are
        skipped; the skip is persisted, so the index is never derived again.
        """
        async with self._lock:
            self._assert_unlocked()
            with self._transaction():
                primary = self._primary_keyring()
                while True:
                    [address] = primary.add_accounts(1)
                    if not self._owned_elsewhere(primary, address):
                        break
                    primary.discard_account(address)
                    logger.debug("Skipped derived account %s, already imported", address)
                await self._persist_all_keyrings(self._password)
            logger.debug("Added account %s", address)
            return self.full_update()

    async def import_account_with_strategy(
        self,
        strategy: Union[ImportStrategy, str],
        args: Sequence[Any],
    ) -> dict[str, Any]:
        """Import an account into a new Simple Key Pair keyring.

        Strategies:
            ``privateKey``: ``args = [hex_private_key]``
            ``json``: ``args = [keystore_json, keystore_password]``

        Raises:
            ValidationError: Unknown strategy, malformed key or duplicate
                account.
            CryptoError: The keystore could not be decrypted.
        """
        try:
            strategy = ImportStrategy(strategy)
        except ValueError:
            raise ValidationError(
                f"Unexpected import strategy: {strategy!r}"
            ) from None
        args = list(args or ())
        async with self._lock:
            self._assert_unlocked()
            if strategy is ImportStrategy.PRIVATE_KEY:
                private_key = SecretBuffer(parse_private_key(args))
            elif strategy is ImportStrategy.JSON:
                keystore, keystore_password = parse_keystore_args(args)
                private_key = SecretBuffer(
                    await asyncio.to_thread(
                        self._encryptor.decrypt_keystore,
                        keystore,
                        keystore_password,
                    )
                )
            else:
                raise ValidationError(
                    f"Unexpected import strategy: {strategy!r}"
                )
            with private_key, self._transaction():
                keyring = SimpleKeyring(self._encryptor, [private_key.reveal()])
                self._keyrings.append(keyring)
                self._check_for_duplicate(keyring)
                await self._persist_all_keyrings(self._password)
            logger.info(
                "Imported account %s using %s strategy",
                keyring.accounts[0], strategy.value,
            )
            return self.full_update()

    async def remove_account(self, address: str) -> dict[str, Any]:
        """Remove an account; empty keyrings other than the primary go too.

        The primary keyring is kept even when its last account is removed,
        so ``add_new_account`` can keep deriving from it.

        Raises:
            NotFoundError: If no keyring owns ``address``.
        """
        async with self._lock:
            self._assert_unlocked()
            address = normalize_address(address)
            with self._transaction():
                keyring = self._keyring_for_account(address)
                keyring.remove_account(address)
                if not keyring.accounts and keyring is not self._keyrings[0]:
                    self._keyrings.remove(keyring)
                await self._persist_all_keyrings(self._password)
            logger.debug("Removed account %s", address)
            return self.full_update()

    async def get_accounts(self) -> list[str]:
        """All accounts, in keyring order."""
        async with self._lock:
            self._assert_unlocked()
            return [
                address
                for keyring in self._keyrings
                for address in keyring.accounts
            ]

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_seed_phrase(self, password: str) -> str:
        """Return the mnemonic of the primary keyring.

        Raises:
            CryptoError: If ``password`` does not decrypt the vault.
        """
        async with self._lock:
            self._assert_unlocked()
            (await self._decrypt_vault(password)).wipe()
            return self._primary_keyring().mnemonic

    async def export_account(self, password: str, address: str) -> str:
        """Return the private key (hex, no prefix) of ``address``.

        Raises:
            CryptoError: If ``password`` does not decrypt the vault.
            NotFoundError: If no keyring owns ``address``.
        """
        async with self._lock:
            self._assert_unlocked()
            (await self._decrypt_vault(password)).wipe()
            address = normalize_address(address)
            return self._keyring_for_account(address).export_account(address)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    async def sign_message(self, params: Mapping[str, Any]) -> str:
        """Sign a 32-byte message hash (``eth_sign``)."""
        address = validate_sign_params(params)
        data = message_hash(params["data"])
        async with self._lock:
            self._assert_unlocked()
            keyring = self._keyring_for_account(address)
            return keyring.sign_message(address, data)

    async def sign_personal_message(self, params: Mapping[str, Any]) -> str:
        """Sign an EIP-191 personal message."""
        address = validate_sign_params(params)
        data = message_data(params["data"])
        async with self._lock:
            self._assert_unlocked()
            keyring = self._keyring_for_account(address)
            return keyring.sign_personal_message(address, data)

    async def sign_typed_message(
        self,
        params: Mapping[str, Any],
        version: Union[TypedMessageVersion, str] = TypedMessageVersion.V1,
    ) -> str:
        """Sign typed data (V1 list of entries, or V3 EIP-712 JSON).

        Raises:
            TypedMessageError: On any failure; the original error is kept
                as ``__cause__``.
        """
        try:
            return await self._sign_typed_message(params, version)
        except Exception as err:
            raise TypedMessageError(
                f"{TYPED_MESSAGE_ERROR_PREFIX} {err}"
            ) from err

    async def _sign_typed_message(
        self,
        params: Mapping[str, Any],
        version: Union[TypedMessageVersion, str],
    ) -> str:
        try:
            version = TypedMessageVersion(version)
        except ValueError:
            raise ValidationError(
                f"Unexpected typed message version: {version!r}"
            ) from None
        address = validate_sign_params(params)
        if version is TypedMessageVersion.V1:
            data = params["data"]
            typed_signature_hash(data)
        elif version is TypedMessageVersion.V3:
            data = parse_typed_data_v3(params["data"])
        else:
            raise ValidationError(
                f"Unexpected typed message version: {version!r}"
            )
        async with self._lock:
            self._assert_unlocked()
            keyring = self._keyring_for_account(address)
            if version is TypedMessageVersion.V1:
                return keyring.sign_typed_data_v1(address, data)
            return keyring.sign_typed_data_v3(address, data)

    async def sign_transaction(
        self, transaction: Mapping[str, Any], from_address: str
    ) -> Any:
        """Sign a transaction with the key of ``from_address``.

        Returns:
            The signed transaction produced by the crypto provider.
        """
        address = normalize_address(from_address)
        if not isinstance(transaction, Mapping):
            raise ValidationError("Transaction must be a mapping.")
        unsigned = {k: v for k, v in transaction.items() if k != "from"}
        async with self._lock:
            self._assert_unlocked()
            keyring = self._keyring_for_account(address)
            return keyring.sign_transaction(address, unsigned)
