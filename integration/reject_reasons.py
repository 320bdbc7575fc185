"""integration/reject_reasons.py

Canonical failure reasons for order building.

Keep as simple string constants so we can:
- return a stable reason next to the human-readable error
- avoid ad-hoc reason strings drifting across modules
"""

# Caller input
INVALID_PARAMS = "invalid_params"
INVALID_PUBKEY = "invalid_pubkey"
INVALID_AMOUNT = "invalid_amount"
INVALID_EXPIRY = "invalid_expiry"
SAME_MINTS = "same_mints"
NOTHING_TO_UPDATE = "nothing_to_update"
UNKNOWN_TOKEN = "unknown_token"

# Indexer / prover
ORDER_NOT_FOUND = "order_not_found"
NO_VALIDITY_PROOF = "no_validity_proof"
UPSTREAM_FAILURE = "upstream_failure"

# Decoding
DECODE_FAILED = "decode_failed"
BUFFER_TOO_SHORT = "buffer_too_short"

# Fallback
INTERNAL_ERROR = "internal_error"


_ALL = {
    INVALID_PARAMS,
    INVALID_PUBKEY,
    INVALID_AMOUNT,
    INVALID_EXPIRY,
    SAME_MINTS,
    NOTHING_TO_UPDATE,
    UNKNOWN_TOKEN,
    ORDER_NOT_FOUND,
    NO_VALIDITY_PROOF,
    UPSTREAM_FAILURE,
    DECODE_FAILED,
    BUFFER_TOO_SHORT,
    INTERNAL_ERROR,
}


def assert_reason_known(reason: str) -> None:
    if reason not in _ALL:
        raise ValueError(f"Unknown failure reason: {reason}")
