"""Core business logic."""

from pgpcore.core.keys import KeyHandle, KeyId, KeyResolver
from pgpcore.core.unlocker import KeyUnlocker, passphrase_callback
from pgpcore.core.signatures import SignatureMapper, SignatureRecord, Trust
from pgpcore.core.orchestrator import CryptoOrchestrator, DecryptionResult, VerificationResult

__all__ = [
    "KeyHandle",
    "KeyId",
    "KeyResolver",
    "KeyUnlocker",
    "passphrase_callback",
    "SignatureMapper",
    "SignatureRecord",
    "Trust",
    "CryptoOrchestrator",
    "DecryptionResult",
    "VerificationResult",
]
