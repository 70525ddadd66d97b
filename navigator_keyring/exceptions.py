"""Navigator Keyring exceptions.

All errors raised by the keyring controller derive from ``KeyringError``,
so callers can catch the whole family at once.
"""


TYPED_MESSAGE_ERROR_PREFIX = "KeyringController.sign_typed_message:"


class KeyringError(Exception):
    """Base class for keyring errors."""


class ValidationError(KeyringError, ValueError):
    """Malformed caller input, detected before any state is touched."""


class CryptoError(KeyringError):
    """The crypto provider failed (wrong password, bad ciphertext, signing)."""


class NotFoundError(KeyringError, LookupError):
    """The referenced account or keyring does not exist."""


class StateError(KeyringError, RuntimeError):
    """Operation not allowed in the current controller state (e.g. locked)."""


class TypedMessageError(KeyringError):
    """Typed message signing failed.

    The message always starts with ``TYPED_MESSAGE_ERROR_PREFIX`` and the
    original error is kept as ``__cause__``.
    """
