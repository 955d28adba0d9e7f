"""PGP engine contract.

The engine performs the actual cryptography. The orchestrator only relies on
the shapes defined here: message handles, key handles and per-signature
verification outcomes whose result is awaited lazily.
"""

from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from pgpcore.core.keys import KeyHandle, KeyIdentifier


class OutputFormat(str, Enum):
    """Representation of decrypted data."""
    UTF8 = "utf8"
    BINARY = "binary"


class MessageKind(str, Enum):
    """Message variants produced and consumed by the engine."""
    PLAINTEXT = "plaintext"
    ENCRYPTED = "encrypted"
    CLEARTEXT = "cleartext"


@dataclass
class Message:
    """Opaque message handle."""
    kind: MessageKind
    payload: str | bytes
    filename: str | None = None
    armored: str | None = None
    native: Any = field(default=None, repr=False)


@dataclass
class DetachedSignature:
    """Signature stored separately from the data it covers."""
    armored: str
    native: Any = field(default=None, repr=False)


@dataclass
class SignaturePacket:
    created: datetime | None = None


@dataclass
class RawSignature:
    """Engine outcome for one signature.

    ``verified`` resolves to a bool or raises: SigningKeyNotFoundError when no
    key was available, any other exception for a failed evaluation.
    ``signature`` resolves to the signature packets.
    """
    key_id: KeyIdentifier
    verified: Awaitable[bool]
    signature: Awaitable[Sequence[SignaturePacket]] | None = None


@dataclass
class EngineResult:
    data: str | bytes
    signatures: list[RawSignature] = field(default_factory=list)


class PGPEngine(Protocol):
    """Cryptographic primitives consumed by the orchestrator."""

    async def create_message(
        self,
        *,
        text: str | None = None,
        binary: bytes | None = None,
        filename: str | None = None,
    ) -> Message: ...

    async def create_cleartext_message(self, text: str) -> Message: ...

    async def read_message(self, data: str | bytes) -> Message: ...

    async def read_cleartext_message(self, armored: str) -> Message: ...

    async def read_signature(self, armored: str) -> DetachedSignature: ...

    async def encrypt(
        self,
        message: Message,
        encryption_keys: list[KeyHandle],
        signing_keys: list[KeyHandle] | None = None,
        armor: bool = True,
    ) -> str | bytes: ...

    async def decrypt(
        self,
        message: Message,
        decryption_key: KeyHandle,
        verification_keys: list[KeyHandle] | None = None,
        format: OutputFormat = OutputFormat.UTF8,
    ) -> EngineResult: ...

    async def sign(self, message: Message, signing_keys: list[KeyHandle]) -> str: ...

    async def verify(
        self,
        message: Message,
        verification_keys: list[KeyHandle],
        signature: DetachedSignature | None = None,
    ) -> EngineResult: ...
