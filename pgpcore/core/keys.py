"""Key handles and key resolution.

The KeyResolver maps the identifiers carried by a request (key ids,
fingerprints, e-mail addresses) to key handles using a Keyring. It decides
which lookups are fatal and which are best effort:

- decryption, signing and encryption keys must exist
- verification keys are optional; a missing key surfaces later as an
  UNKNOWN signature instead of an error
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, Union, runtime_checkable

from pgpcore.core.encoding import to_list
from pgpcore.core.exceptions import (
    FingerprintLookupError,
    NoDecryptionKeyError,
    NoKeyFoundError,
)

logger = logging.getLogger(__name__)

# A long key id is the last 16 hex digits of the fingerprint
KEY_ID_LENGTH = 16


@runtime_checkable
class KeyIdLike(Protocol):
    """Identifier object that renders itself as hex."""
    def to_hex(self) -> str: ...


@dataclass(frozen=True)
class KeyId:
    """Short-form key identifier."""
    value: str

    def to_hex(self) -> str:
        return normalize_key_id(self.value)

    def __str__(self) -> str:
        return self.to_hex()


KeyIdentifier = Union[str, KeyIdLike]


def normalize_key_id(identifier: KeyIdentifier) -> str:
    """Return the canonical lowercase hex form of a key identifier."""
    if isinstance(identifier, KeyIdLike):
        identifier = identifier.to_hex()
    text = "".join(str(identifier).split()).lower()
    if text.startswith("0x"):
        text = text[2:]
    return text


def normalize_address(address: str) -> str:
    return address.strip().lower()


@dataclass
class KeyHandle:
    """Reference to a public or private key.

    ``secret`` holds transient unlock material (e.g. a passphrase) and is only
    set on handles returned by the KeyUnlocker. ``native`` is whatever object
    the engine needs to use the key.
    """
    key_id: str
    fingerprint: str | None = None
    subkey_ids: tuple[str, ...] = ()
    user_ids: tuple[str, ...] = ()
    is_private: bool = False
    locked: bool = True
    secret: Any = field(default=None, repr=False)
    native: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        self.key_id = normalize_key_id(self.key_id)
        if self.fingerprint:
            self.fingerprint = normalize_key_id(self.fingerprint)
        self.subkey_ids = tuple(normalize_key_id(k) for k in self.subkey_ids)

    @property
    def is_unlocked(self) -> bool:
        return self.is_private and not self.locked

    def matches(self, identifier: KeyIdentifier) -> bool:
        """Check a key id, subkey id or fingerprint against this key."""
        wanted = normalize_key_id(identifier)
        if not wanted:
            return False
        if wanted == self.key_id or wanted in self.subkey_ids:
            return True
        if self.fingerprint is None:
            return False
        return len(wanted) >= KEY_ID_LENGTH and self.fingerprint.endswith(wanted)


class Keystore(Protocol):
    """Low-level key lookup."""

    def get_keys_for_id(self, key_id: str, exact_match: bool = False) -> list[KeyHandle] | None: ...


class Keyring(Protocol):
    """Key storage collaborator.

    ``refresh`` runs once at the start of every operation so that the
    synchronous lookups can answer from memory. ``get_fpr_for_key_id`` raises
    LookupError when the key id is unknown.
    """
    keystore: Keystore

    async def refresh(self) -> None: ...

    def get_private_key_by_ids(self, key_ids: list[str]) -> KeyHandle | None: ...

    async def get_key_by_address(self, addresses: list[str]) -> dict[str, list[KeyHandle]]: ...

    def get_keys_by_fprs(self, fingerprints: list[str]) -> list[KeyHandle]: ...

    def get_fpr_for_key_id(self, key_id: str) -> str: ...


class KeyResolver:
    """Resolves request identifiers to key handles."""

    def __init__(self, keyring: Keyring):
        self.keyring = keyring

    async def refresh(self) -> None:
        """Reload the keyring view used by the lookups of one operation."""
        await self.keyring.refresh()

    def resolve_decryption_key(self, key_ids: Iterable[KeyIdentifier]) -> KeyHandle:
        """Find the private key for one of the message recipients."""
        ids = [normalize_key_id(k) for k in to_list(key_ids)]
        key = self.keyring.get_private_key_by_ids(ids) if ids else None
        if key is None:
            raise NoDecryptionKeyError(
                f"No private key found for recipients: {', '.join(ids) or '(none)'}"
            )
        return key

    def resolve_signing_key(self, fingerprint: str) -> KeyHandle:
        """Find exactly one private key by fingerprint."""
        fpr = normalize_key_id(fingerprint)
        key = self.keyring.get_private_key_by_ids([fpr])
        if key is None:
            raise NoKeyFoundError(f"No private key found for fingerprint: {fpr}")
        return key

    async def resolve_signing_keys_by_address(self, addresses: Iterable[str]) -> list[KeyHandle]:
        """Look up public keys for sender addresses.

        Addresses are deduplicated; keys are returned in address order. An
        empty result is not an error.
        """
        normalized = []
        for address in to_list(addresses):
            address = normalize_address(address)
            if address and address not in normalized:
                normalized.append(address)
        if not normalized:
            return []

        keys_by_address = await self.keyring.get_key_by_address(normalized)
        keys = []
        for address in normalized:
            keys.extend(keys_by_address.get(address) or [])
        return keys

    def resolve_encryption_keys(self, fingerprints: Iterable[str]) -> list[KeyHandle]:
        """Find recipient public keys. At least one recipient is required."""
        fprs = [normalize_key_id(f) for f in to_list(fingerprints)]
        keys = self.keyring.get_keys_by_fprs(fprs) if fprs else []
        if not keys:
            raise NoKeyFoundError(
                f"No encryption key found for: {', '.join(fprs) or '(none)'}"
            )
        return list(keys)

    def resolve_verification_keys_by_ids(self, key_ids: Iterable[KeyIdentifier]) -> list[KeyHandle]:
        """Best-effort lookup of verification keys; unknown ids are skipped."""
        keys = []
        for identifier in to_list(key_ids):
            key_id = normalize_key_id(identifier)
            found = self.keyring.keystore.get_keys_for_id(key_id, True)
            if found:
                keys.append(found[0])
            else:
                logger.debug("No verification key for %s", key_id)
        return keys

    def resolve_fingerprint(self, key_id: KeyIdentifier) -> str:
        key_id = normalize_key_id(key_id)
        try:
            fingerprint = self.keyring.get_fpr_for_key_id(key_id)
        except LookupError as e:
            raise FingerprintLookupError(f"No fingerprint for key ID {key_id}") from e
        if not fingerprint:
            raise FingerprintLookupError(f"No fingerprint for key ID {key_id}")
        return normalize_key_id(fingerprint)
