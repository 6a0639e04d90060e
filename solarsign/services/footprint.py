"""
Digital footprint hashing and signature identifiers.

The verification hash binds the client's behavioural footprint, the head of
the signature payload and the signing time:

    sha256(canonical_json({
        "digitalFootprint": <footprint, camelCase>,
        "signatureData": payload[:100],
        "signedAt": "YYYY-MM-DDTHH:MM:SS.mmmZ",
    }))

Canonical JSON uses sorted keys and compact separators so the same inputs
always produce the same digest.
"""
import hashlib
import json
import secrets
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from solarsign.models import DigitalFootprint, SignatureMetadata, SignaturePosition
from solarsign.utils.datetime_utils import ensure_utc, to_iso_millis, utc_now

SIGNATURE_PAYLOAD_HASH_PREFIX = 100
SIGNATURE_ID_PREFIX = "SIG_"


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_verification_hash(
    footprint: DigitalFootprint,
    signature_payload: str,
    signed_at: datetime,
) -> str:
    """Hex SHA-256 over the canonical footprint / payload head / timestamp document."""
    document = {
        "digitalFootprint": footprint.to_wire(),
        "signatureData": (signature_payload or "")[:SIGNATURE_PAYLOAD_HASH_PREFIX],
        "signedAt": to_iso_millis(signed_at),
    }
    return hashlib.sha256(canonical_json(document).encode("utf-8")).hexdigest()


class SignatureIdGenerator:
    """
    Generates SIG_<epoch-ms>_<16 uppercase hex> identifiers.

    The millisecond component is strictly increasing for one generator, so
    two ids issued in the same millisecond still sort in issue order.
    """

    def __init__(self, clock=None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last_ms = 0
        self._lock = threading.Lock()

    def _next_ms(self) -> int:
        with self._lock:
            now = self._clock()
            if now <= self._last_ms:
                now = self._last_ms + 1
            self._last_ms = now
            return now

    def generate(self) -> str:
        return f"{SIGNATURE_ID_PREFIX}{self._next_ms()}_{secrets.token_hex(8).upper()}"


_id_generator = SignatureIdGenerator()


def generate_signature_id() -> str:
    """Generate a signature id from the process-wide generator."""
    return _id_generator.generate()


def parse_signature_id(signature_id: str) -> Optional[Tuple[int, str]]:
    """Return (epoch_ms, random_hex) or None if the id is not in SIG_ format."""
    if not signature_id or not signature_id.startswith(SIGNATURE_ID_PREFIX):
        return None
    parts = signature_id[len(SIGNATURE_ID_PREFIX):].split("_")
    if len(parts) != 2 or not parts[0].isdigit() or len(parts[1]) != 16:
        return None
    try:
        int(parts[1], 16)
    except ValueError:
        return None
    return int(parts[0]), parts[1]


def build_signature_metadata(
    opportunity_id: str,
    signed_by: str,
    footprint: DigitalFootprint,
    signature_payload: str,
    pdf_path: str,
    position: SignaturePosition,
    signed_at: Optional[datetime] = None,
    signature_id: Optional[str] = None,
) -> SignatureMetadata:
    """Assemble the immutable metadata record for one signing event."""
    signed_at = ensure_utc(signed_at or utc_now())
    # Stored and hashed with millisecond precision
    signed_at = signed_at.replace(microsecond=(signed_at.microsecond // 1000) * 1000)
    return SignatureMetadata(
        signature_id=signature_id or generate_signature_id(),
        opportunity_id=opportunity_id,
        signed_by=signed_by,
        signed_at=signed_at,
        digital_footprint=footprint,
        pdf_path=pdf_path,
        signature_position=position,
        verification_hash=compute_verification_hash(footprint, signature_payload, signed_at),
    )


def footprint_document(metadata: SignatureMetadata) -> Dict[str, Any]:
    """Footprint data embedded into the signed PDF."""
    return {
        "signatureId": metadata.signature_id,
        "signedBy": metadata.signed_by,
        "signedAt": to_iso_millis(metadata.signed_at),
        "digitalFootprint": metadata.digital_footprint.to_wire(),
        "verificationHash": metadata.verification_hash,
    }
