"""Error taxonomy for OpenPGP operations.

Three families mirror the stages of every operation:

- KeyResolutionError: the keyring could not supply a key
- UnlockError: a private key could not be unlocked
- EngineError: the PGP engine rejected the message, key or signature

Resolution and unlock errors are raised before the engine is called.
Engine errors propagate unchanged to the caller.
"""


class PGPCoreError(Exception):
    """Base exception for all OpenPGP operations."""
    pass


# =============================================================================
# Key resolution
# =============================================================================

class KeyResolutionError(PGPCoreError):
    """Key could not be resolved from the keyring."""
    pass


class NoKeyFoundError(KeyResolutionError):
    """No key in the keyring matches the requested identifiers."""
    pass


class NoDecryptionKeyError(NoKeyFoundError):
    """No private key matches the recipients of an encrypted message."""
    pass


class FingerprintLookupError(KeyResolutionError):
    """Key id has no fingerprint mapping in the keyring."""
    pass


# =============================================================================
# Unlocking
# =============================================================================

class UnlockError(PGPCoreError):
    """Private key could not be unlocked."""
    pass


class UserCancelledError(UnlockError):
    """User dismissed the unlock prompt."""
    pass


class WrongPassphraseError(UnlockError):
    """Passphrase did not unlock the key."""
    pass


# =============================================================================
# Engine
# =============================================================================

class EngineError(PGPCoreError):
    """PGP engine failed to process the request."""
    pass


class DecryptionFailedError(EngineError):
    """Ciphertext does not match the key or failed its integrity check."""
    pass


class MalformedMessageError(EngineError):
    """Message could not be parsed."""
    pass


class MalformedSignatureError(EngineError):
    """Signature block could not be parsed."""
    pass


class SignatureVerificationError(EngineError):
    """A single signature failed to verify."""
    pass


class SigningKeyNotFoundError(SignatureVerificationError):
    """No key was available to evaluate a signature."""

    def __init__(self, key_id: str):
        self.key_id = key_id
        super().__init__(f"Could not find signing key with key ID {key_id}")
