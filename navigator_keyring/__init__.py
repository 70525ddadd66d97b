"""Navigator Keyring.

Encrypted keyring vault, account management and signing, published as
observable controller state.
"""
from .version import (
    __title__,
    __description__,
    __version__,
    __author__,
    __author_email__,
    __license__,
)
from .base import BaseController
from .composable import ComposableController
from .preferences import PreferencesController
from .exceptions import (
    KeyringError,
    ValidationError,
    CryptoError,
    NotFoundError,
    StateError,
    TypedMessageError,
)
from .keyring import KeyringController, KeyringConfig

__all__ = (
    "BaseController",
    "ComposableController",
    "PreferencesController",
    "KeyringController",
    "KeyringConfig",
    "KeyringError",
    "ValidationError",
    "CryptoError",
    "NotFoundError",
    "StateError",
    "TypedMessageError",
)
