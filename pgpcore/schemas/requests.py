"""Request schemas for the four OpenPGP operations."""

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from pgpcore.core.engine import Message, OutputFormat
from pgpcore.core.keys import KeyIdLike


def _check_key_identifiers(values: list[Any]) -> list[Any]:
    for value in values:
        if not isinstance(value, (str, KeyIdLike)):
            raise ValueError(f"Unsupported key identifier: {value!r}")
    return values


def _check_message(value: Any, required: bool = False) -> Any:
    if value is None and required:
        raise ValueError("message is required")
    if value is not None and not isinstance(value, Message):
        raise ValueError("message must be an engine Message")
    return value


class DecryptRequest(BaseModel):
    """Decrypt a message, optionally verifying its signatures."""

    message: Any = Field(description="Encrypted engine message")
    encryption_key_ids: list[Any] = Field(
        min_length=1,
        description="Key ids the message is encrypted to (str or KeyId)"
    )
    sender_address: str | list[str] | None = Field(
        default=None,
        description="Sender e-mail address(es) used to find verification keys"
    )
    self_signed: bool = Field(
        default=False,
        description="Message was signed by the recipient (draft)"
    )
    format: OutputFormat = Field(
        default=OutputFormat.UTF8,
        description="Output representation of the decrypted data"
    )

    @field_validator("message")
    @classmethod
    def check_message(cls, v: Any) -> Any:
        return _check_message(v, required=True)

    @field_validator("encryption_key_ids")
    @classmethod
    def check_key_ids(cls, v: list[Any]) -> list[Any]:
        return _check_key_identifiers(v)


class EncryptRequest(BaseModel):
    """Encrypt text or a data URL payload to one or more recipients."""

    data: str | None = Field(default=None, description="Plaintext to encrypt")
    data_url: str | None = Field(default=None, description="Payload as data: URL")
    encryption_key_fprs: list[str] = Field(description="Recipient fingerprints")
    signing_key_fpr: str | None = Field(
        default=None,
        description="Fingerprint of the signing key; unsigned if omitted"
    )
    filename: str | None = None
    armor: bool = Field(default=True, description="Return an armored block")

    @field_validator("data_url")
    @classmethod
    def check_data_url(cls, v: str | None) -> str | None:
        if v is not None and (not v.startswith("data:") or "," not in v):
            raise ValueError("data_url must be a data: URL")
        return v

    @model_validator(mode="after")
    def check_payload(self) -> "EncryptRequest":
        if (self.data is None) == (self.data_url is None):
            raise ValueError("Exactly one of data or data_url is required")
        return self


class SignRequest(BaseModel):
    """Produce a cleartext signature."""

    data: str
    signing_key_fpr: str = Field(min_length=1)


class VerifyRequest(BaseModel):
    """Verify an attached or detached signature."""

    message: Any = Field(default=None, description="Signed engine message")
    plaintext: str | None = None
    detached_signature: str | None = Field(
        default=None,
        description="Armored detached signature covering plaintext"
    )
    signing_key_ids: list[Any] = Field(
        default_factory=list,
        description="Ids or fingerprints of candidate signing keys"
    )

    @field_validator("message")
    @classmethod
    def check_message(cls, v: Any) -> Any:
        return _check_message(v)

    @field_validator("signing_key_ids")
    @classmethod
    def check_key_ids(cls, v: list[Any]) -> list[Any]:
        return _check_key_identifiers(v)

    @property
    def is_detached(self) -> bool:
        return self.plaintext is not None and self.detached_signature is not None

    @model_validator(mode="after")
    def check_mode(self) -> "VerifyRequest":
        if self.detached_signature is not None and self.plaintext is None:
            raise ValueError("detached_signature requires plaintext")
        if self.message is not None and self.plaintext is not None:
            raise ValueError("Provide either message or plaintext, not both")
        if self.message is None and not self.is_detached:
            raise ValueError("Provide message, or plaintext with detached_signature")
        return self
