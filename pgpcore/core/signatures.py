"""Signature result mapping.

Turns the engine's raw per-signature outcomes into stable records with a
three-valued trust state:

- VALID: verified and bound to a known fingerprint
- INVALID: evaluation failed, or the key could not be pinned to a fingerprint
- UNKNOWN: no key was available to evaluate the signature
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pgpcore.core.engine import RawSignature
from pgpcore.core.exceptions import FingerprintLookupError, SigningKeyNotFoundError
from pgpcore.core.keys import KeyResolver, normalize_key_id

logger = logging.getLogger(__name__)


class Trust(str, Enum):
    """Outcome of a signature check."""
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"

    def to_bool(self) -> bool | None:
        if self is Trust.UNKNOWN:
            return None
        return self is Trust.VALID


@dataclass
class SignatureRecord:
    """Normalized signature result."""
    key_id: str
    valid: Trust
    created: datetime | None = None
    fingerprint: str | None = None

    def to_dict(self) -> dict:
        data = {"keyId": self.key_id, "valid": self.valid.to_bool()}
        if self.created is not None:
            data["created"] = self.created.isoformat()
        if self.fingerprint is not None:
            data["fingerprint"] = self.fingerprint
        return data


class SignatureMapper:
    """Maps raw signature outcomes to SignatureRecords."""

    def __init__(self, resolver: KeyResolver):
        self.resolver = resolver

    async def map_signatures(self, signatures: list[RawSignature] | None) -> list[SignatureRecord]:
        """Map all signatures concurrently, keeping input order."""
        if not signatures:
            return []
        return list(await asyncio.gather(*(self.map_signature(s) for s in signatures)))

    async def map_signature(self, signature: RawSignature) -> SignatureRecord:
        record = SignatureRecord(
            key_id=normalize_key_id(signature.key_id),
            valid=await self._evaluate(signature),
        )
        record.created = await self._creation_time(signature)

        if record.valid is not Trust.UNKNOWN:
            try:
                record.fingerprint = self.resolver.resolve_fingerprint(record.key_id)
            except FingerprintLookupError as e:
                logger.warning("Error mapping key ID %s to fingerprint: %s", record.key_id, e)
                record.valid = Trust.INVALID

        return record

    async def _evaluate(self, signature: RawSignature) -> Trust:
        try:
            verified = await signature.verified
        except SigningKeyNotFoundError:
            return Trust.UNKNOWN
        except Exception as e:
            logger.debug("Signature by %s failed to verify: %s", signature.key_id, e)
            return Trust.INVALID
        return Trust.VALID if verified else Trust.INVALID

    async def _creation_time(self, signature: RawSignature) -> datetime | None:
        if signature.signature is None:
            return None
        try:
            packets = await signature.signature
            return packets[0].created if packets else None
        except Exception:
            # Creation time is informational only
            return None
