"""Shared fixtures: an in-memory keyring and a toy PGP engine.

The fake engine does no real cryptography. "Encryption" is base64 over JSON
that records the recipients, and "signatures" are SHA-256 digests over the
data and the signer's fingerprint. That is enough to exercise key selection,
unlocking and signature mapping without a gpg binary.
"""

import base64
import hashlib
import json
from datetime import datetime, timezone

import pytest

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
from pgpcore.core.keys import KeyHandle, KeyResolver
from pgpcore.core.orchestrator import CryptoOrchestrator
from pgpcore.core.signatures import SignatureMapper
from pgpcore.core.unlocker import KeyUnlocker, passphrase_callback

PASSPHRASE = "correct horse battery staple"
SIGNATURE_CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)

ALICE_FPR = "a1a1a1a1a1a1a1a1a1a1a1a1" + "a1a1a1a1a1a1a1a1"
BOB_FPR = "b2b2b2b2b2b2b2b2b2b2b2b2" + "b2b2b2b2b2b2b2b2"
CAROL_FPR = "c3c3c3c3c3c3c3c3c3c3c3c3" + "c3c3c3c3c3c3c3c3"

ARMOR_MESSAGE = ("-----BEGIN FAKE MESSAGE-----", "-----END FAKE MESSAGE-----")
ARMOR_CLEARTEXT = "-----BEGIN FAKE SIGNED MESSAGE-----"
ARMOR_SIGNATURE = ("-----BEGIN FAKE SIGNATURE-----", "-----END FAKE SIGNATURE-----")
BINARY_PREFIX = b"FAKE"


def make_key(fingerprint: str, subkey_id: str, user_id: str, is_private: bool) -> KeyHandle:
    return KeyHandle(
        key_id=fingerprint[-16:],
        fingerprint=fingerprint,
        subkey_ids=(subkey_id,),
        user_ids=(user_id,),
        is_private=is_private,
    )


def digest(data: bytes, fingerprint: str) -> str:
    return hashlib.sha256(data + fingerprint.encode()).hexdigest()


def armor_signature(key: KeyHandle, data: bytes) -> str:
    body = json.dumps({"key_id": key.key_id, "digest": digest(data, key.fingerprint)})
    return f"{ARMOR_SIGNATURE[0]}\n{body}\n{ARMOR_SIGNATURE[1]}"


async def _resolved(value):
    return value


async def _rejected(error):
    raise error


class FakeKeyring:
    """Keyring over fixed lists of handles."""

    def __init__(self, public_keys, private_keys, unmapped_key_ids=()):
        self.public_keys = list(public_keys)
        self.private_keys = list(private_keys)
        self.unmapped_key_ids = set(unmapped_key_ids)
        self.keystore = self
        self.address_lookups = []
        self.refreshes = 0

    async def refresh(self):
        self.refreshes += 1

    def get_private_key_by_ids(self, key_ids):
        for key_id in key_ids:
            for key in self.private_keys:
                if key.matches(key_id):
                    return key
        return None

    async def get_key_by_address(self, addresses):
        self.address_lookups.append(list(addresses))
        result = {}
        for address in addresses:
            keys = [k for k in self.public_keys if any(address in uid.lower() for uid in k.user_ids)]
            if keys:
                result[address] = keys
        return result

    def get_keys_by_fprs(self, fingerprints):
        return [k for fpr in fingerprints for k in self.public_keys if k.matches(fpr)]

    def get_fpr_for_key_id(self, key_id):
        if key_id in self.unmapped_key_ids:
            raise KeyError(key_id)
        for key in self.public_keys + self.private_keys:
            if key.matches(key_id):
                return key.fingerprint
        raise KeyError(key_id)

    def get_keys_for_id(self, key_id, exact_match=False):
        found = [k for k in self.public_keys if k.matches(key_id)]
        return found or None


class FakeEngine:
    """Toy engine that records every call it receives."""

    def __init__(self):
        self.calls = []
        self.decryption_keys = []
        self.signing_keys = []

    async def create_message(self, *, text=None, binary=None, filename=None):
        self.calls.append("create_message")
        payload = text if text is not None else bytes(binary)
        return Message(kind=MessageKind.PLAINTEXT, payload=payload, filename=filename)

    async def create_cleartext_message(self, text):
        self.calls.append("create_cleartext_message")
        return Message(kind=MessageKind.CLEARTEXT, payload=text)

    async def read_message(self, data):
        self.calls.append("read_message")
        if isinstance(data, str):
            if not data.startswith(ARMOR_MESSAGE[0]):
                raise MalformedMessageError("not armored")
            raw = base64.b64decode(data.splitlines()[1])
        else:
            if not data.startswith(BINARY_PREFIX):
                raise MalformedMessageError("bad prefix")
            raw = bytes(data[len(BINARY_PREFIX):])
        return Message(kind=MessageKind.ENCRYPTED, payload=data, native=json.loads(raw))

    async def read_cleartext_message(self, armored):
        self.calls.append("read_cleartext_message")
        text, _, signature = armored[len(ARMOR_CLEARTEXT) + 1:].partition("\n" + ARMOR_SIGNATURE[0])
        return Message(
            kind=MessageKind.CLEARTEXT,
            payload=text,
            armored=armored,
            native=json.loads(signature.split("\n")[1]),
        )

    async def read_signature(self, armored):
        self.calls.append("read_signature")
        if not armored.startswith(ARMOR_SIGNATURE[0]):
            raise MalformedSignatureError("not a signature")
        return DetachedSignature(armored=armored, native=json.loads(armored.splitlines()[1]))

    async def encrypt(self, message, encryption_keys, signing_keys=None, armor=True):
        self.calls.append("encrypt")
        data = message.payload.encode() if isinstance(message.payload, str) else message.payload
        signature = None
        if signing_keys:
            signer = self._check_unlocked(signing_keys[0])
            signature = {"key_id": signer.key_id, "digest": digest(data, signer.fingerprint)}
        envelope = json.dumps({
            "to": [k.fingerprint for k in encryption_keys],
            "data": base64.b64encode(data).decode(),
            "filename": message.filename,
            "signature": signature,
        }).encode()
        if armor:
            return f"{ARMOR_MESSAGE[0]}\n{base64.b64encode(envelope).decode()}\n{ARMOR_MESSAGE[1]}"
        return BINARY_PREFIX + envelope

    async def decrypt(self, message, decryption_key, verification_keys=None, format=OutputFormat.UTF8):
        self.calls.append("decrypt")
        self.decryption_keys.append(decryption_key.fingerprint)
        self._check_unlocked(decryption_key)
        envelope = message.native
        if decryption_key.fingerprint not in envelope["to"]:
            raise DecryptionFailedError("Session key decryption failed")

        data = base64.b64decode(envelope["data"])
        signatures = []
        if verification_keys is not None and envelope["signature"]:
            signatures.append(self._check(envelope["signature"], data, verification_keys))
        return EngineResult(
            data=data.decode() if format == OutputFormat.UTF8 else data,
            signatures=signatures,
        )

    async def sign(self, message, signing_keys):
        self.calls.append("sign")
        signer = self._check_unlocked(signing_keys[0])
        self.signing_keys.append(signer.fingerprint)
        return f"{ARMOR_CLEARTEXT}\n{message.payload}\n{armor_signature(signer, message.payload.encode())}"

    async def verify(self, message, verification_keys, signature=None):
        self.calls.append("verify")
        parsed = signature.native if signature is not None else message.native
        if parsed is None:
            raise MalformedMessageError("Message carries no signature")
        raw = self._check(parsed, message.payload.encode(), verification_keys)
        return EngineResult(data=message.payload, signatures=[raw])

    def _check_unlocked(self, key):
        if not key.is_unlocked:
            raise EngineError(f"Key {key.key_id} is locked")
        if key.secret != PASSPHRASE:
            raise WrongPassphraseError("Incorrect key passphrase")
        return key

    def _check(self, signature, data, verification_keys):
        key_id = signature["key_id"]
        signer = next((k for k in verification_keys if k.matches(key_id)), None)
        if signer is None:
            verified = _rejected(SigningKeyNotFoundError(key_id))
        elif digest(data, signer.fingerprint) != signature["digest"]:
            verified = _rejected(SignatureVerificationError("Signed digest did not match"))
        else:
            verified = _resolved(True)
        return RawSignature(
            key_id=key_id,
            verified=verified,
            signature=_resolved([SignaturePacket(created=SIGNATURE_CREATED)]),
        )


@pytest.fixture
def alice():
    return make_key(ALICE_FPR, "a1a1a1a1a1a1a1aa", "Alice <alice@example.org>", is_private=False)


@pytest.fixture
def alice_private():
    return make_key(ALICE_FPR, "a1a1a1a1a1a1a1aa", "Alice <alice@example.org>", is_private=True)


@pytest.fixture
def bob():
    return make_key(BOB_FPR, "b2b2b2b2b2b2b2bb", "Bob <bob@example.org>", is_private=False)


@pytest.fixture
def bob_private():
    return make_key(BOB_FPR, "b2b2b2b2b2b2b2bb", "Bob <bob@example.org>", is_private=True)


@pytest.fixture
def carol():
    return make_key(CAROL_FPR, "c3c3c3c3c3c3c3cc", "Carol <carol@example.org>", is_private=False)


@pytest.fixture
def keyring(alice, alice_private, bob, bob_private, carol):
    """Alice and Bob have private keys; Carol is public only."""
    return FakeKeyring([alice, bob, carol], [alice_private, bob_private])


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def unlock_calls():
    return []


@pytest.fixture
def unlock_key(unlock_calls):
    unlock = passphrase_callback(PASSPHRASE)

    async def recording_unlock(key):
        unlock_calls.append(key.fingerprint)
        return await unlock(key)

    return recording_unlock


@pytest.fixture
def resolver(keyring):
    return KeyResolver(keyring)


@pytest.fixture
def orchestrator(engine, resolver, unlock_key):
    return CryptoOrchestrator(
        engine=engine,
        resolver=resolver,
        unlocker=KeyUnlocker(unlock_key),
        mapper=SignatureMapper(resolver),
    )
