"""Request schemas."""

from pgpcore.schemas.requests import DecryptRequest, EncryptRequest, SignRequest, VerifyRequest

__all__ = ["DecryptRequest", "EncryptRequest", "SignRequest", "VerifyRequest"]
