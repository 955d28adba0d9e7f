"""OpenPGP decrypt, encrypt, sign and verify over a pluggable keyring and engine."""

from pgpcore.core import (
    CryptoOrchestrator,
    DecryptionResult,
    KeyResolver,
    KeyUnlocker,
    SignatureMapper,
    SignatureRecord,
    Trust,
    VerificationResult,
)
from pgpcore.schemas import DecryptRequest, EncryptRequest, SignRequest, VerifyRequest

__version__ = "0.1.0"
__all__ = [
    "CryptoOrchestrator",
    "DecryptionResult",
    "VerificationResult",
    "KeyResolver",
    "KeyUnlocker",
    "SignatureMapper",
    "SignatureRecord",
    "Trust",
    "DecryptRequest",
    "EncryptRequest",
    "SignRequest",
    "VerifyRequest",
]
