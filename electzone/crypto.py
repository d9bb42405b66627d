# electzone/crypto.py
# Vote tokens and payload integrity hashes
import hashlib
import hmac
import json
import uuid
from typing import Any, Dict


def generate_vote_token() -> str:
    """Random per-vote token. Carries nothing about the voter."""
    return str(uuid.uuid4())


def canonical_bytes(payload: Dict[str, Any]) -> bytes:
    """
    Canonical byte form of a vote payload.
    Keys are sorted at every level so two payloads holding the same data
    serialize identically no matter how their dicts were built.
    """
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def create_payload_hash(payload: Dict[str, Any]) -> str:
    """SHA-256 hex digest (64 chars) of the canonical payload."""
    return hashlib.sha256(canonical_bytes(payload)).hexdigest()


def verify_payload_hash(payload: Dict[str, Any], expected_hash: str) -> bool:
    """Recompute the digest of a stored payload and compare it with the stored hash."""
    if not expected_hash:
        return False
    computed = create_payload_hash(payload)
    return hmac.compare_digest(computed, expected_hash.lower())
