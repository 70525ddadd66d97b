"""Keyring — Encrypted vault of Ethereum keyrings with lock/unlock lifecycle.

Security Note (Threat Model):
    Keys, mnemonics and the vault password are held in process memory while
    the controller is unlocked and zeroed on lock. A memory dump of an
    unlocked process can expose them; copies made by the interpreter or by
    crypto libraries are outside our control.
"""

from .controller import KeyringController, ImportStrategy, TypedMessageVersion
from .config import KeyringConfig, EncryptorSettings
from .crypto import CryptoProvider, EthCryptoProvider
from .keyrings import KeyringType, HDKeyring, SimpleKeyring

__all__ = [
    "KeyringController",
    "ImportStrategy",
    "TypedMessageVersion",
    "KeyringConfig",
    "EncryptorSettings",
    "CryptoProvider",
    "EthCryptoProvider",
    "KeyringType",
    "HDKeyring",
    "SimpleKeyring",
]
