"""
Input validation for keyring operations.

These checks run before the vault or the crypto provider is touched, so a
``ValidationError`` never leaves side effects behind.
"""
from typing import Any
from collections.abc import Mapping, Sequence

import orjson
from eth_utils import is_hex, is_hex_address, to_normalized_address

from ..exceptions import ValidationError

# secp256k1 group order
SECP256K1_N = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16
)


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value[:2].lower() == "0x" else value


def normalize_address(address: Any) -> str:
    """Return ``address`` as 0x-prefixed lower-case hex.

    Raises:
        ValidationError: If ``address`` is not a 20-byte hex string.
    """
    if not isinstance(address, str) or not is_hex_address(address):
        raise ValidationError(f"Invalid address: {address!r}")
    return to_normalized_address(address)


def parse_private_key(args: Sequence[Any]) -> bytes:
    """Validate the arguments of the ``privateKey`` import strategy."""
    key = args[0] if args else None
    if not key:
        raise ValidationError("Cannot import an empty key.")
    if not isinstance(key, str):
        raise ValidationError("Cannot import invalid private key.")
    try:
        raw = bytes.fromhex(strip_hex_prefix(key.strip()))
    except ValueError:
        raise ValidationError("Cannot import invalid private key.") from None
    if len(raw) != 32 or not 0 < int.from_bytes(raw, "big") < SECP256K1_N:
        raise ValidationError("Cannot import invalid private key.")
    return raw


def parse_keystore_args(args: Sequence[Any]) -> tuple[dict[str, Any], str]:
    """Validate the arguments of the ``json`` import strategy.

    Returns:
        Tuple of (keystore document, keystore password).
    """
    if len(args) < 2:
        raise ValidationError(
            "Importing a JSON keystore needs the keystore and its password."
        )
    keystore, password = args[0], args[1]
    if isinstance(keystore, (str, bytes)):
        try:
            keystore = orjson.loads(keystore)
        except orjson.JSONDecodeError:
            raise ValidationError("Keystore must be valid JSON.") from None
    if not isinstance(keystore, Mapping):
        raise ValidationError("Keystore must be a JSON object.")
    if not isinstance(password, str):
        raise ValidationError("Keystore password must be a string.")
    return dict(keystore), password


def validate_password(password: Any) -> None:
    if not password or not isinstance(password, str):
        raise ValidationError("Password must be a non-empty string.")


def validate_sign_params(params: Any) -> str:
    """Validate ``{"from", "data"}`` message parameters.

    Returns:
        The normalized ``from`` address.
    """
    if not isinstance(params, Mapping):
        raise ValidationError("Message parameters must be a mapping.")
    sender = params.get("from")
    if not isinstance(sender, str) or not is_hex_address(sender):
        raise ValidationError(
            f'Invalid "from" address: {sender!r} must be a valid string.'
        )
    if "data" not in params or params["data"] is None:
        raise ValidationError('Invalid message "data": missing.')
    return to_normalized_address(sender)


def message_hash(data: Any) -> bytes:
    """Decode the 32-byte hash signed by ``sign_message``."""
    if isinstance(data, (bytes, bytearray)):
        raw = bytes(data)
    elif isinstance(data, str) and is_hex(data) and len(data) % 2 == 0:
        raw = bytes.fromhex(strip_hex_prefix(data))
    else:
        raise ValidationError(
            f'Invalid message "data": {data!r} must be a hex string.'
        )
    if len(raw) != 32:
        raise ValidationError(
            f'Invalid message "data": expected 32 bytes, got {len(raw)}.'
        )
    return raw


def message_data(data: Any) -> bytes:
    """Bytes of a personal message: hex is decoded, other text is UTF-8."""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if not isinstance(data, str):
        raise ValidationError(
            f'Invalid message "data": {data!r} must be a valid string.'
        )
    stripped = strip_hex_prefix(data)
    if stripped and len(stripped) % 2 == 0 and is_hex(data):
        return bytes.fromhex(stripped)
    return data.encode("utf-8")
