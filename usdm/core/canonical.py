"""
USDM: Canonical JSON Encoding — RFC 8785 (JCS)

This is the ONLY canonicalization permitted in USDM.
Signed price posts, journal signatures and journal chain hashes
all pass through this module.

Fixed-point values are encoded as their decimal string (str(Dec)),
never as JSON numbers, so that no float ever enters a signed surface.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib

try:
    import jcs as _jcs
except ImportError as exc:
    raise ImportError(
        "USDM requires the 'jcs' package for RFC 8785 compliance.\n"
        "Install with: pip install jcs\n"
        f"Original error: {exc}"
    ) from exc


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    Values must be JSON primitives. Convert Dec and datetime values
    to strings before calling.

    Returns:
        UTF-8 encoded canonical JSON bytes, suitable for signing.
    """
    return _jcs.canonicalize(obj)


def canonical_hash(obj: dict) -> str:
    """
    SHA-256 of the RFC 8785 canonical form.

    Used for journal causal_hash chaining and genesis fingerprints.

    Returns:
        Lowercase hex-encoded SHA-256 digest (64 characters).
    """
    return hashlib.sha256(canonicalize(obj)).hexdigest()
