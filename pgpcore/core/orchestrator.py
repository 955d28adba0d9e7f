"""OpenPGP operations.

Composes key resolution, unlocking, the PGP engine and signature mapping into
decrypt, encrypt, sign and verify. Keys are resolved and unlocked before the
engine is called, so a missing key or a cancelled unlock never leaves a
partial result behind.
"""

from dataclasses import dataclass, field

from pgpcore.core.encoding import bytes_to_str, data_url_to_bytes, to_list
from pgpcore.core.engine import OutputFormat, PGPEngine
from pgpcore.core.keys import KeyHandle, KeyResolver
from pgpcore.core.signatures import SignatureMapper, SignatureRecord
from pgpcore.core.unlocker import KeyUnlocker
from pgpcore.schemas.requests import DecryptRequest, EncryptRequest, SignRequest, VerifyRequest


@dataclass
class DecryptionResult:
    """Result of decryption."""
    data: str
    signatures: list[SignatureRecord] = field(default_factory=list)


@dataclass
class VerificationResult:
    """Result of signature verification."""
    data: str
    signatures: list[SignatureRecord] = field(default_factory=list)


class CryptoOrchestrator:
    """Runs OpenPGP operations against a keyring and a PGP engine."""

    def __init__(
        self,
        engine: PGPEngine,
        resolver: KeyResolver,
        unlocker: KeyUnlocker,
        mapper: SignatureMapper | None = None,
    ):
        self.engine = engine
        self.resolver = resolver
        self.unlocker = unlocker
        self.mapper = mapper or SignatureMapper(resolver)

    async def decrypt(self, request: DecryptRequest) -> DecryptionResult:
        """Decrypt a message and verify its signatures when a signer is expected."""
        await self.resolver.refresh()
        private_key = self.resolver.resolve_decryption_key(request.encryption_key_ids)

        async with self.unlocker.unlocked(private_key) as decryption_key:
            verification_keys = await self._decrypt_verification_keys(
                request.sender_address, request.self_signed, decryption_key
            )
            result = await self.engine.decrypt(
                request.message,
                decryption_key,
                verification_keys=verification_keys,
                format=request.format,
            )

        signatures = await self.mapper.map_signatures(result.signatures)

        data = result.data
        if request.format == OutputFormat.BINARY and isinstance(data, (bytes, bytearray)):
            data = bytes_to_str(data)
        return DecryptionResult(data=data, signatures=signatures)

    async def _decrypt_verification_keys(
        self,
        sender_address: str | list[str] | None,
        self_signed: bool,
        decryption_key: KeyHandle,
    ) -> list[KeyHandle] | None:
        addresses = to_list(sender_address)
        if not addresses and not self_signed:
            return None

        keys = []
        if addresses:
            keys = await self.resolver.resolve_signing_keys_by_address(addresses)
        # Drafts are signed with the recipient's own key
        if not keys:
            keys = [decryption_key]
        return keys

    async def encrypt(self, request: EncryptRequest) -> str:
        """Encrypt to the given recipients, optionally signing.

        Armored output is returned as is; binary output is byte-bridged.
        """
        binary = None
        if request.data is None:
            binary = data_url_to_bytes(request.data_url)
        await self.resolver.refresh()
        encryption_keys = self.resolver.resolve_encryption_keys(request.encryption_key_fprs)

        if request.signing_key_fpr:
            signing_key = self.resolver.resolve_signing_key(request.signing_key_fpr)
            async with self.unlocker.unlocked(signing_key) as unlocked_key:
                result = await self._encrypt(request, binary, encryption_keys, [unlocked_key])
        else:
            result = await self._encrypt(request, binary, encryption_keys, None)

        if request.armor:
            return result
        return bytes_to_str(result)

    async def _encrypt(
        self,
        request: EncryptRequest,
        binary: bytes | None,
        encryption_keys: list[KeyHandle],
        signing_keys: list[KeyHandle] | None,
    ) -> str | bytes:
        if binary is None:
            message = await self.engine.create_message(
                text=request.data, filename=request.filename
            )
        else:
            message = await self.engine.create_message(
                binary=binary, filename=request.filename
            )
        return await self.engine.encrypt(
            message,
            encryption_keys,
            signing_keys=signing_keys,
            armor=request.armor,
        )

    async def sign(self, request: SignRequest) -> str:
        """Produce a cleartext-signed representation of the data."""
        await self.resolver.refresh()
        signing_key = self.resolver.resolve_signing_key(request.signing_key_fpr)

        async with self.unlocker.unlocked(signing_key) as unlocked_key:
            message = await self.engine.create_cleartext_message(request.data)
            return await self.engine.sign(message, [unlocked_key])

    async def verify(self, request: VerifyRequest) -> VerificationResult:
        """Verify an attached or detached signature."""
        await self.resolver.refresh()
        verification_keys = self.resolver.resolve_verification_keys_by_ids(
            request.signing_key_ids
        )

        signature = None
        message = request.message
        if request.is_detached:
            signature = await self.engine.read_signature(request.detached_signature)
            message = await self.engine.create_message(text=request.plaintext)

        result = await self.engine.verify(
            message, verification_keys, signature=signature
        )
        signatures = await self.mapper.map_signatures(result.signatures)

        data = result.data
        if isinstance(data, (bytes, bytearray)):
            data = bytes_to_str(data)
        return VerificationResult(data=data, signatures=signatures)
