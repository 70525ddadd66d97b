"""
Tests for the default crypto provider and its configuration.

Tests cover:
- Vault encryption blob format and decryption failures
- Mnemonic generation, validation and BIP-44 derivation
- Keystore decryption
- EncryptorSettings and KeyringConfig validation
"""
import base64

import orjson
import pytest
from eth_account import Account
from pydantic import ValidationError as PydanticValidationError

from navigator_keyring.exceptions import CryptoError
from navigator_keyring.keyring import EncryptorSettings, EthCryptoProvider, KeyringConfig
from navigator_keyring.keyring.crypto import VAULT_VERSION, WRONG_PASSPHRASE

TEST_MNEMONIC = "test test test test test test test test test test test junk"
PRIVATE_KEY = bytes.fromhex(
    "1e4e6a4c0c077f4ae8ddfbf372918e61dd0fb4a4cfa592cb16e7546d505e68fc"
)
PRIVATE_KEY_ADDRESS = "0x51253087e6f8358b5f10c0a94315d69db3357859"


@pytest.fixture
def provider():
    """A real provider with a low scrypt cost for fast tests."""
    return EthCryptoProvider(scrypt_n=2 ** 10)


# --- Test Vault Encryption ---

class TestVaultEncryption:
    """Tests for scrypt + AES-GCM vault blobs."""

    def test_encrypt_decrypt(self, provider):
        blob = provider.encrypt("secret", b'[{"type": "HD Key Tree"}]')
        assert provider.decrypt("secret", blob) == bytearray(b'[{"type": "HD Key Tree"}]')

    def test_decrypt_returns_bytearray(self, provider):
        blob = provider.encrypt("secret", b"data")
        assert isinstance(provider.decrypt("secret", blob), bytearray)

    def test_blob_format(self, provider):
        payload = orjson.loads(provider.encrypt("secret", b"data"))
        assert payload["version"] == VAULT_VERSION
        assert payload["kdf"] == "scrypt"
        assert payload["cipher"] == "aes-256-gcm"
        assert payload["kdfparams"]["n"] == 2 ** 10
        assert payload["kdfparams"]["dklen"] == 32
        assert len(base64.b64decode(payload["iv"])) == 12
        assert len(base64.b64decode(payload["kdfparams"]["salt"])) == 32

    def test_blob_does_not_contain_plaintext(self, provider):
        blob = provider.encrypt("secret", b"very secret mnemonic")
        assert "very secret mnemonic" not in blob

    def test_unique_salt_and_nonce(self, provider):
        first = orjson.loads(provider.encrypt("secret", b"data"))
        second = orjson.loads(provider.encrypt("secret", b"data"))
        assert first["iv"] != second["iv"]
        assert first["kdfparams"]["salt"] != second["kdfparams"]["salt"]

    def test_decrypt_uses_blob_parameters(self, provider):
        """A blob stays readable after the provider's cost changes."""
        blob = provider.encrypt("secret", b"data")
        other = EthCryptoProvider(scrypt_n=2 ** 11)
        assert other.decrypt("secret", blob) == bytearray(b"data")

    def test_wrong_password(self, provider):
        blob = provider.encrypt("secret", b"data")
        with pytest.raises(CryptoError, match="Incorrect password"):
            provider.decrypt("not-secret", blob)

    def test_tampered_ciphertext(self, provider):
        payload = orjson.loads(provider.encrypt("secret", b"data"))
        ct = bytearray(base64.b64decode(payload["data"]))
        ct[0] ^= 0xFF
        payload["data"] = base64.b64encode(bytes(ct)).decode("ascii")
        with pytest.raises(CryptoError):
            provider.decrypt("secret", orjson.dumps(payload).decode("utf-8"))

    def test_corrupted_blob(self, provider):
        with pytest.raises(CryptoError, match="corrupted"):
            provider.decrypt("secret", "not json")
        with pytest.raises(CryptoError, match="corrupted"):
            provider.decrypt("secret", '{"version": 1}')

    def test_tampered_nonce_length(self, provider):
        """A nonce of the wrong size is reported as corruption."""
        payload = orjson.loads(provider.encrypt("secret", b"data"))
        payload["iv"] = "eA=="
        with pytest.raises(CryptoError, match="Vault data is corrupted"):
            provider.decrypt("secret", orjson.dumps(payload).decode("utf-8"))

    def test_unsupported_version(self, provider):
        payload = orjson.loads(provider.encrypt("secret", b"data"))
        payload["version"] = 99
        with pytest.raises(CryptoError, match="Unsupported vault version: 99"):
            provider.decrypt("secret", orjson.dumps(payload).decode("utf-8"))


# --- Test Accounts ---

class TestAccounts:
    """Tests for mnemonics, derivation and keystores."""

    def test_generate_mnemonic(self, provider):
        phrase = provider.generate_mnemonic()
        assert len(phrase.split()) == 12
        assert provider.is_valid_mnemonic(phrase)

    def test_generated_mnemonics_differ(self, provider):
        assert provider.generate_mnemonic() != provider.generate_mnemonic()

    def test_invalid_mnemonic(self, provider):
        assert provider.is_valid_mnemonic("not a mnemonic") is False
        # valid words, bad checksum
        assert provider.is_valid_mnemonic(" ".join(["abandon"] * 12)) is False

    def test_derive_account(self, provider):
        address, key = provider.derive_account(TEST_MNEMONIC, 0)
        assert address == "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
        assert len(key) == 32
        assert provider.address_from_private_key(key) == address

    def test_derive_next_index(self, provider):
        address, _ = provider.derive_account(TEST_MNEMONIC, 1)
        assert address == "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"

    def test_address_from_private_key(self, provider):
        assert provider.address_from_private_key(PRIVATE_KEY) == PRIVATE_KEY_ADDRESS

    def test_decrypt_keystore(self, provider):
        keystore = Account.encrypt(PRIVATE_KEY, "pw", kdf="pbkdf2", iterations=2)
        assert provider.decrypt_keystore(keystore, "pw") == PRIVATE_KEY

    def test_decrypt_keystore_wrong_password(self, provider):
        keystore = Account.encrypt(PRIVATE_KEY, "pw", kdf="pbkdf2", iterations=2)
        with pytest.raises(CryptoError) as exc:
            provider.decrypt_keystore(keystore, "other")
        assert str(exc.value) == WRONG_PASSPHRASE

    def test_sign_hash_format(self, provider):
        signature = provider.sign_hash(PRIVATE_KEY, b"\x01" * 32)
        assert signature.startswith("0x")
        assert len(bytes.fromhex(signature[2:])) == 65


# --- Test Configuration ---

class TestEncryptorSettings:
    """Tests for validated encryptor settings."""

    def test_defaults(self):
        settings = EncryptorSettings()
        assert settings.scrypt_n == 2 ** 14
        assert settings.scrypt_r == 8
        assert settings.scrypt_p == 1

    def test_n_must_be_power_of_two(self):
        with pytest.raises(PydanticValidationError, match="power of two"):
            EncryptorSettings(scrypt_n=3000)

    def test_n_minimum(self):
        with pytest.raises(PydanticValidationError):
            EncryptorSettings(scrypt_n=2 ** 4)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("KEYRING_SCRYPT_N", "2048")
        monkeypatch.setenv("KEYRING_SCRYPT_R", "4")
        monkeypatch.delenv("KEYRING_SCRYPT_P", raising=False)
        settings = EncryptorSettings.from_env()
        assert settings.scrypt_n == 2048
        assert settings.scrypt_r == 4
        assert settings.scrypt_p == 1

    def test_build(self):
        provider = EncryptorSettings(scrypt_n=2 ** 12).build()
        assert isinstance(provider, EthCryptoProvider)
        assert provider.scrypt_n == 2 ** 12


class TestKeyringConfig:
    """Tests for controller configuration."""

    def test_default_encryptor(self, monkeypatch):
        monkeypatch.setenv("KEYRING_SCRYPT_N", "1024")
        config = KeyringConfig()
        assert isinstance(config.encryptor, EthCryptoProvider)
        assert config.encryptor.scrypt_n == 1024

    def test_encryptor_must_be_provider(self):
        with pytest.raises(PydanticValidationError):
            KeyringConfig(encryptor=object())

    def test_hd_path_template(self):
        config = KeyringConfig(encryptor=EthCryptoProvider(), hd_path="m/44'/60'/1'/0/{}")
        assert config.hd_path == "m/44'/60'/1'/0/{}"

    @pytest.mark.parametrize("hd_path", ["44'/60'/0'/0/{}", "m/44'/60'/0'/0/0"])
    def test_invalid_hd_path(self, hd_path):
        with pytest.raises(PydanticValidationError, match="Invalid HD path"):
            KeyringConfig(encryptor=EthCryptoProvider(), hd_path=hd_path)
