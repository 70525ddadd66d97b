"""
Keyring Configuration — crypto provider injection and validated settings.

Reads scrypt cost parameters for the default vault encryptor from
environment variables:
    KEYRING_SCRYPT_N = <power of two, default 16384>
    KEYRING_SCRYPT_R = <integer, default 8>
    KEYRING_SCRYPT_P = <integer, default 1>

Security Note:
    Never log passwords or key material. Only log cost parameters.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

from .crypto import (
    DEFAULT_HD_PATH,
    DEFAULT_SCRYPT_N,
    DEFAULT_SCRYPT_P,
    DEFAULT_SCRYPT_R,
    CryptoProvider,
    EthCryptoProvider,
)

logger = logging.getLogger("navigator.keyring")


class EncryptorSettings(BaseModel):
    """Validated cost parameters of the default vault encryptor."""

    scrypt_n: int = Field(default=DEFAULT_SCRYPT_N, ge=2 ** 10)
    scrypt_r: int = Field(default=DEFAULT_SCRYPT_R, ge=1)
    scrypt_p: int = Field(default=DEFAULT_SCRYPT_P, ge=1)

    @field_validator("scrypt_n")
    @classmethod
    def validate_power_of_two(cls, v: int) -> int:
        """scrypt requires N to be a power of two."""
        if v & (v - 1):
            raise ValueError(f"scrypt_n must be a power of two, got {v}")
        return v

    @classmethod
    def from_env(cls) -> "EncryptorSettings":
        """Create EncryptorSettings from KEYRING_SCRYPT_* variables.

        Returns:
            Populated EncryptorSettings instance.
        """
        settings = cls(
            scrypt_n=int(os.environ.get("KEYRING_SCRYPT_N", DEFAULT_SCRYPT_N)),
            scrypt_r=int(os.environ.get("KEYRING_SCRYPT_R", DEFAULT_SCRYPT_R)),
            scrypt_p=int(os.environ.get("KEYRING_SCRYPT_P", DEFAULT_SCRYPT_P)),
        )
        logger.debug(
            "Vault encryptor settings: n=%d r=%d p=%d",
            settings.scrypt_n, settings.scrypt_r, settings.scrypt_p,
        )
        return settings

    def build(self) -> EthCryptoProvider:
        return EthCryptoProvider(
            scrypt_n=self.scrypt_n,
            scrypt_r=self.scrypt_r,
            scrypt_p=self.scrypt_p,
        )


def default_encryptor() -> CryptoProvider:
    """Default crypto provider, configured from the environment."""
    return EncryptorSettings.from_env().build()


class KeyringConfig(BaseModel):
    """Validated keyring controller configuration."""

    encryptor: CryptoProvider = Field(default_factory=default_encryptor)
    hd_path: str = Field(default=DEFAULT_HD_PATH)

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("hd_path")
    @classmethod
    def validate_hd_path(cls, v: str) -> str:
        """The path template needs one ``{}`` placeholder for the index."""
        if not v.startswith("m/") or v.count("{}") != 1:
            raise ValueError(f"Invalid HD path template: {v}")
        return v
