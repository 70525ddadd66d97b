"""Shared fixtures for Navigator Keyring tests."""
import base64

import orjson
import pytest
import pytest_asyncio

from navigator_keyring.exceptions import CryptoError
from navigator_keyring.keyring import KeyringConfig, KeyringController
from navigator_keyring.keyring.crypto import EthCryptoProvider

PASSWORD = "password123"


class FakeEncryptor(EthCryptoProvider):
    """Deterministic vault encryption without a KDF, for fast tests.

    Signing and derivation are the real eth-account implementations.
    """

    def __init__(self):
        super().__init__()
        self.encrypt_calls = 0
        self.fail_encrypt = False

    def encrypt(self, password, plaintext):
        if self.fail_encrypt:
            raise CryptoError("encrypt failed")
        self.encrypt_calls += 1
        return orjson.dumps({
            "password": password,
            "data": base64.b64encode(plaintext).decode("ascii"),
        }).decode("utf-8")

    def decrypt(self, password, blob):
        payload = orjson.loads(blob)
        if payload["password"] != password:
            raise CryptoError("Incorrect password")
        return bytearray(base64.b64decode(payload["data"]))


@pytest.fixture
def encryptor():
    return FakeEncryptor()


@pytest.fixture
def config(encryptor):
    return KeyringConfig(encryptor=encryptor)


@pytest_asyncio.fixture
async def controller(config):
    """A controller with a fresh vault, unlocked."""
    controller = KeyringController(config)
    await controller.create_new_vault_and_keychain(PASSWORD)
    return controller


@pytest.fixture
def initial_state(controller):
    return controller.state
