"""Parsers for GnuPG output.

GnuPG reports each signature it checks as a sequence of ``[GNUPG:]`` status
lines, e.g.::

    [GNUPG:] NEWSIG
    [GNUPG:] GOODSIG 8F5A63E4C1D2B3A4 Alice <alice@example.org>
    [GNUPG:] VALIDSIG <fpr> 2024-01-01 1704067200 0 4 0 1 10 01 <primary-fpr>

python-gnupg only keeps the last signature it saw, so the status text is
parsed here to get one entry per signature.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

STATUS_PREFIX = "[GNUPG:] "

CLEARTEXT_HEADER = "-----BEGIN PGP SIGNED MESSAGE-----"
SIGNATURE_HEADER = "-----BEGIN PGP SIGNATURE-----"
MESSAGE_HEADER = "-----BEGIN PGP MESSAGE-----"


class SignatureState(str, Enum):
    GOOD = "good"
    BAD = "bad"
    EXPIRED = "expired"
    KEY_EXPIRED = "key_expired"
    KEY_REVOKED = "key_revoked"
    ERROR = "error"
    MISSING_KEY = "missing_key"


# Status keyword -> state for lines of the form "<KEYWORD> <keyid> <uid>"
RESULT_KEYWORDS = {
    "GOODSIG": SignatureState.GOOD,
    "BADSIG": SignatureState.BAD,
    "EXPSIG": SignatureState.EXPIRED,
    "EXPKEYSIG": SignatureState.KEY_EXPIRED,
    "REVKEYSIG": SignatureState.KEY_REVOKED,
}

# ERRSIG return code for a missing public key
ERRSIG_NO_PUBKEY = "9"


@dataclass
class SignatureStatus:
    """What GnuPG reported about one signature."""
    key_id: str | None = None
    state: SignatureState | None = None
    fingerprint: str | None = None
    primary_fingerprint: str | None = None
    created: datetime | None = None


def _parse_timestamp(value: str) -> datetime | None:
    if not value or value == "0":
        return None
    try:
        if "T" in value:
            return datetime.strptime(value, "%Y%m%dT%H%M%S").replace(tzinfo=timezone.utc)
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (ValueError, OverflowError):
        return None


def _key_id(value: str) -> str:
    # GOODSIG and friends may carry a full fingerprint instead of a key id
    return value.lower()[-16:]


def parse_signature_status(status_text: str) -> list[SignatureStatus]:
    """Split GnuPG status output into per-signature entries, in order."""
    signatures: list[SignatureStatus] = []
    current: SignatureStatus | None = None

    def start() -> SignatureStatus:
        entry = SignatureStatus()
        signatures.append(entry)
        return entry

    for line in (status_text or "").splitlines():
        if not line.startswith(STATUS_PREFIX):
            continue
        keyword, _, value = line[len(STATUS_PREFIX):].partition(" ")
        fields = value.split()

        if keyword == "NEWSIG":
            current = start()
        elif keyword in RESULT_KEYWORDS:
            # Older gpg versions do not emit NEWSIG
            if current is None or current.state is not None:
                current = start()
            current.state = RESULT_KEYWORDS[keyword]
            current.key_id = _key_id(fields[0]) if fields else None
        elif keyword == "ERRSIG":
            if current is None or current.state is not None:
                current = start()
            current.key_id = _key_id(fields[0]) if fields else None
            rc = fields[5] if len(fields) > 5 else None
            current.state = (
                SignatureState.MISSING_KEY if rc == ERRSIG_NO_PUBKEY else SignatureState.ERROR
            )
            if len(fields) > 4:
                current.created = _parse_timestamp(fields[4])
            if len(fields) > 6 and fields[6] != "-":
                current.fingerprint = fields[6].lower()
        elif keyword == "NO_PUBKEY" and current is not None:
            current.state = SignatureState.MISSING_KEY
        elif keyword == "VALIDSIG" and current is not None:
            current.fingerprint = fields[0].lower() if fields else None
            if len(fields) > 2:
                current.created = _parse_timestamp(fields[2])
            if len(fields) > 9:
                current.primary_fingerprint = fields[9].lower()

    return [s for s in signatures if s.state is not None]


def extract_cleartext(armored: str) -> str:
    """Return the signed text of a cleartext-signed message.

    Raises ValueError if the armor is not a cleartext signature.
    """
    lines = armored.replace("\r\n", "\n").split("\n")
    try:
        start = next(i for i, line in enumerate(lines) if line.strip() == CLEARTEXT_HEADER)
        end = next(i for i, line in enumerate(lines) if line.strip() == SIGNATURE_HEADER)
    except StopIteration:
        raise ValueError("Not a cleartext signed message") from None

    # Armor headers ("Hash: ...") end at the first empty line
    body_start = start + 1
    while body_start < end and lines[body_start].strip():
        body_start += 1
    if body_start >= end:
        raise ValueError("Cleartext message has no body")
    body = lines[body_start + 1:end]

    return "\n".join(line[2:] if line.startswith("- ") else line for line in body)
