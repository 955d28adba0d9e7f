"""GnuPG-backed keyring and PGP engine.

Wraps python-gnupg. Every gpg invocation is a blocking subprocess call and
runs in a worker thread.
"""

import asyncio
import logging
import os
import shutil
import subprocess
import tempfile
from email.utils import parseaddr

import gnupg

from pgpcore.backends.parsing import (
    MESSAGE_HEADER,
    SIGNATURE_HEADER,
    SignatureState,
    SignatureStatus,
    extract_cleartext,
    parse_signature_status,
)
from pgpcore.config import Settings, get_settings
from pgpcore.core.engine import (
    DetachedSignature,
    EngineResult,
    Message,
    MessageKind,
    OutputFormat,
    RawSignature,
    SignaturePacket,
)
from pgpcore.core.exceptions import (
    DecryptionFailedError,
    EngineError,
    MalformedMessageError,
    MalformedSignatureError,
    SignatureVerificationError,
    SigningKeyNotFoundError,
    WrongPassphraseError,
)
from pgpcore.core.keys import KeyHandle, KeyResolver, normalize_address, normalize_key_id
from pgpcore.core.orchestrator import CryptoOrchestrator
from pgpcore.core.unlocker import KeyUnlocker, UnlockCallback
from pgpcore.logger import configure_logging

logger = logging.getLogger(__name__)
logging.getLogger("gnupg").setLevel(logging.CRITICAL)


def _key_from_listing(entry: dict, is_private: bool) -> KeyHandle:
    """Build a KeyHandle from a python-gnupg list_keys() entry."""
    subkeys = entry.get("subkeys") or []
    return KeyHandle(
        key_id=entry["keyid"],
        fingerprint=entry.get("fingerprint"),
        subkey_ids=tuple(sub[0] for sub in subkeys if sub),
        user_ids=tuple(entry.get("uids") or ()),
        is_private=is_private,
    )


def _email(user_id: str) -> str:
    return normalize_address(parseaddr(user_id)[1])


# =============================================================================
# Keyring
# =============================================================================

class GnuPGKeyring:
    """Read-only view of a GnuPG home directory.

    ``refresh`` lists public and secret keys in a worker thread and keeps the
    result; the synchronous lookups answer from that listing. A keyring that
    was never refreshed lists keys on first use.
    """

    def __init__(self, gpg: gnupg.GPG):
        self.gpg = gpg
        self.keystore = self
        self._listing: tuple[list[KeyHandle], list[KeyHandle]] | None = None

    def _list(self) -> tuple[list[KeyHandle], list[KeyHandle]]:
        public = [_key_from_listing(k, False) for k in self.gpg.list_keys()]
        private = [_key_from_listing(k, True) for k in self.gpg.list_keys(True)]
        return public, private

    async def refresh(self) -> None:
        self._listing = await asyncio.to_thread(self._list)

    def _snapshot(self) -> tuple[list[KeyHandle], list[KeyHandle]]:
        if self._listing is None:
            self._listing = self._list()
        return self._listing

    def public_keys(self) -> list[KeyHandle]:
        return self._snapshot()[0]

    def private_keys(self) -> list[KeyHandle]:
        return self._snapshot()[1]

    def get_private_key_by_ids(self, key_ids: list[str]) -> KeyHandle | None:
        keys = self.private_keys()
        for key_id in key_ids:
            for key in keys:
                if key.matches(key_id):
                    return key
        return None

    async def get_key_by_address(self, addresses: list[str]) -> dict[str, list[KeyHandle]]:
        if self._listing is None:
            await self.refresh()
        wanted = {normalize_address(a) for a in addresses}
        result: dict[str, list[KeyHandle]] = {}
        for key in self.public_keys():
            for email in {_email(uid) for uid in key.user_ids}:
                if email in wanted:
                    result.setdefault(email, []).append(key)
        return result

    def get_keys_by_fprs(self, fingerprints: list[str]) -> list[KeyHandle]:
        keys = self.public_keys()
        found = []
        for fpr in fingerprints:
            for key in keys:
                if key.matches(fpr) and key not in found:
                    found.append(key)
        return found

    def get_fpr_for_key_id(self, key_id: str) -> str:
        for key in self.public_keys():
            if key.matches(key_id):
                return key.fingerprint
        raise KeyError(key_id)

    def get_keys_for_id(self, key_id: str, exact_match: bool = False) -> list[KeyHandle] | None:
        keys = self.public_keys()
        if exact_match:
            found = [k for k in keys if k.matches(key_id)]
        else:
            needle = normalize_key_id(key_id)
            found = [
                k for k in keys
                if needle in (k.fingerprint or "")
                or any(needle in uid.lower() for uid in k.user_ids)
            ]
        return found or None


# =============================================================================
# Engine
# =============================================================================

async def _resolved(value):
    return value


async def _rejected(error: Exception):
    raise error


def _raise_for_status(result, default: type[EngineError], action: str):
    status = (getattr(result, "status", None) or "").lower()
    detail = (getattr(result, "stderr", None) or "").lower()
    if "passphrase" in status or "bad passphrase" in detail or "bad_passphrase" in detail:
        raise WrongPassphraseError(f"{action} failed: {status}")
    if "no data" in status or "expected" in status or "invalid packet" in status:
        raise MalformedMessageError(f"{action} failed: {status}")
    raise default(f"{action} failed: {status or 'unknown gpg error'}")


def _as_bytes(payload: str | bytes) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return bytes(payload)


class GnuPGEngine:
    """PGP engine backed by the gpg binary."""

    def __init__(self, gpg: gnupg.GPG, always_trust: bool = True):
        self.gpg = gpg
        self.always_trust = always_trust

    async def create_message(
        self,
        *,
        text: str | None = None,
        binary: bytes | None = None,
        filename: str | None = None,
    ) -> Message:
        if (text is None) == (binary is None):
            raise ValueError("Exactly one of text or binary is required")
        payload = text if text is not None else bytes(binary)
        return Message(kind=MessageKind.PLAINTEXT, payload=payload, filename=filename)

    async def create_cleartext_message(self, text: str) -> Message:
        return Message(kind=MessageKind.CLEARTEXT, payload=text)

    async def read_message(self, data: str | bytes) -> Message:
        if isinstance(data, str):
            if MESSAGE_HEADER not in data:
                raise MalformedMessageError("Missing PGP MESSAGE armor")
            return Message(kind=MessageKind.ENCRYPTED, payload=data, armored=data)
        if not data:
            raise MalformedMessageError("Empty message")
        return Message(kind=MessageKind.ENCRYPTED, payload=bytes(data))

    async def read_cleartext_message(self, armored: str) -> Message:
        try:
            text = extract_cleartext(armored)
        except ValueError as e:
            raise MalformedMessageError(str(e)) from e
        return Message(kind=MessageKind.CLEARTEXT, payload=text, armored=armored)

    async def read_signature(self, armored: str) -> DetachedSignature:
        if not armored or SIGNATURE_HEADER not in armored:
            raise MalformedSignatureError("Missing PGP SIGNATURE armor")
        return DetachedSignature(armored=armored)

    async def encrypt(
        self,
        message: Message,
        encryption_keys: list[KeyHandle],
        signing_keys: list[KeyHandle] | None = None,
        armor: bool = True,
    ) -> str | bytes:
        signer = signing_keys[0] if signing_keys else None
        extra_args = ["--set-filename", message.filename] if message.filename else None

        result = await asyncio.to_thread(
            self.gpg.encrypt,
            _as_bytes(message.payload),
            [k.fingerprint for k in encryption_keys],
            sign=signer.fingerprint if signer else None,
            passphrase=signer.secret if signer else None,
            always_trust=self.always_trust,
            armor=armor,
            extra_args=extra_args,
        )
        if not result.ok:
            _raise_for_status(result, EngineError, "Encryption")
        return result.data.decode("ascii") if armor else result.data

    async def decrypt(
        self,
        message: Message,
        decryption_key: KeyHandle,
        verification_keys: list[KeyHandle] | None = None,
        format: OutputFormat = OutputFormat.UTF8,
    ) -> EngineResult:
        extra_args = None
        if decryption_key.fingerprint:
            extra_args = ["--try-secret-key", decryption_key.fingerprint]

        result = await asyncio.to_thread(
            self.gpg.decrypt,
            _as_bytes(message.armored or message.payload),
            passphrase=decryption_key.secret,
            always_trust=self.always_trust,
            extra_args=extra_args,
        )
        if not result.ok:
            _raise_for_status(result, DecryptionFailedError, "Decryption")

        data = result.data
        if format == OutputFormat.UTF8:
            data = data.decode("utf-8", errors="replace")

        signatures = []
        if verification_keys is not None:
            signatures = self._signature_outcomes(result.stderr, verification_keys)
        return EngineResult(data=data, signatures=signatures)

    async def sign(self, message: Message, signing_keys: list[KeyHandle]) -> str:
        if not signing_keys:
            raise EngineError("No signing key")
        signer = signing_keys[0]

        result = await asyncio.to_thread(
            self.gpg.sign,
            _as_bytes(message.payload),
            keyid=signer.fingerprint,
            passphrase=signer.secret,
            clearsign=True,
        )
        if not result:
            _raise_for_status(result, EngineError, "Signing")
        return result.data.decode("utf-8")

    async def verify(
        self,
        message: Message,
        verification_keys: list[KeyHandle],
        signature: DetachedSignature | None = None,
    ) -> EngineResult:
        if signature is not None:
            result = await asyncio.to_thread(
                self._verify_detached, signature.armored, _as_bytes(message.payload)
            )
        elif message.kind == MessageKind.CLEARTEXT and message.armored:
            result = await asyncio.to_thread(self.gpg.verify, _as_bytes(message.armored))
        else:
            raise MalformedMessageError("Message carries no signature")

        signatures = self._signature_outcomes(result.stderr, verification_keys)
        if not signatures:
            raise MalformedSignatureError(f"No signature found: {result.status or 'unknown'}")
        return EngineResult(data=message.payload, signatures=signatures)

    def _verify_detached(self, armored_signature: str, data: bytes):
        fd, path = tempfile.mkstemp(prefix="sig-", suffix=".asc")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(armored_signature)
            return self.gpg.verify_data(path, data)
        finally:
            os.unlink(path)

    def _signature_outcomes(
        self,
        status_text: str,
        verification_keys: list[KeyHandle],
    ) -> list[RawSignature]:
        return [
            self._outcome(status, verification_keys)
            for status in parse_signature_status(status_text)
        ]

    def _outcome(self, status: SignatureStatus, verification_keys: list[KeyHandle]) -> RawSignature:
        key_id = status.key_id or ""
        known = any(
            k.matches(key_id)
            or (status.primary_fingerprint and k.matches(status.primary_fingerprint))
            for k in verification_keys
        )

        if status.state == SignatureState.MISSING_KEY or not known:
            verified = _rejected(SigningKeyNotFoundError(key_id))
        elif status.state == SignatureState.GOOD:
            verified = _resolved(True)
        else:
            verified = _rejected(
                SignatureVerificationError(f"Signature by {key_id}: {status.state.value}")
            )

        return RawSignature(
            key_id=key_id,
            verified=verified,
            signature=_resolved([SignaturePacket(created=status.created)]),
        )


# =============================================================================
# Agent
# =============================================================================

AGENT_CONF = "gpg-agent.conf"
NO_CACHE_OPTIONS = {"default-cache-ttl": "0", "max-cache-ttl": "0"}


def disable_passphrase_cache(gnupg_home: str | None) -> None:
    """Stop gpg-agent from caching passphrases for this home.

    Rewrites the cache TTLs in gpg-agent.conf and reloads a running agent,
    which also drops anything it has cached so far.
    """
    home = gnupg_home or os.environ.get("GNUPGHOME") or os.path.expanduser("~/.gnupg")
    os.makedirs(home, mode=0o700, exist_ok=True)
    path = os.path.join(home, AGENT_CONF)

    lines = []
    if os.path.exists(path):
        with open(path) as f:
            lines = [
                line.rstrip("\n") for line in f
                if (line.split() or [""])[0] not in NO_CACHE_OPTIONS
            ]
    lines.extend(f"{name} {value}" for name, value in NO_CACHE_OPTIONS.items())
    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")

    gpgconf = shutil.which("gpgconf")
    if gpgconf is None:
        logger.warning("gpgconf not found; gpg-agent keeps its current cache settings")
        return
    result = subprocess.run(
        [gpgconf, "--reload", "gpg-agent"],
        env={**os.environ, "GNUPGHOME": home},
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        # No running agent; the next one starts with the new settings
        logger.debug("gpg-agent not reloaded: %s", result.stderr.strip())


# =============================================================================
# Factory
# =============================================================================

def create_gnupg_orchestrator(
    unlock_key: UnlockCallback,
    settings: Settings | None = None,
) -> CryptoOrchestrator:
    """Wire a CryptoOrchestrator to a GnuPG home directory."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_file)
    disable_passphrase_cache(settings.gnupg_home)

    gpg = gnupg.GPG(gpgbinary=settings.gpg_binary, gnupghome=settings.gnupg_home)
    logger.debug("Using GnuPG home %s", settings.gnupg_home or "(default)")

    resolver = KeyResolver(GnuPGKeyring(gpg))
    return CryptoOrchestrator(
        engine=GnuPGEngine(gpg, always_trust=settings.always_trust),
        resolver=resolver,
        unlocker=KeyUnlocker(unlock_key),
    )
