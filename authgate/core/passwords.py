"""Password hashing and verification.

Thin wrapper over bcrypt. ``verify_password`` never raises: a mismatch or
an unusable digest is simply ``False``.
"""

import bcrypt

from authgate.core.config import settings

# bcrypt only looks at the first 72 bytes; longer inputs are rejected upstream.
MAX_PASSWORD_BYTES = 72

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every app startup.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


def hash_password(plaintext: str, *, rounds: int | None = None) -> str:
    """Hash a password with a fresh salt.

    Args:
        plaintext: Password to hash.
        rounds: bcrypt cost factor. Defaults to ``settings.bcrypt_rounds``.

    Returns:
        bcrypt digest as text.
    """
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(plaintext.encode(), salt).decode()


def verify_password(plaintext: str, digest: str | None) -> bool:
    """Check a password against a stored digest in constant time.

    When ``digest`` is None (unknown account, or no password set) the
    comparison still runs against DUMMY_HASH so the response time does not
    reveal whether the account exists.

    Args:
        plaintext: Candidate password.
        digest: Stored bcrypt digest, or None.

    Returns:
        True only if the password matches a real digest.
    """
    candidate = plaintext.encode()
    if digest is None:
        _safe_checkpw(candidate, DUMMY_HASH)
        return False
    return _safe_checkpw(candidate, digest.encode())


def _safe_checkpw(candidate: bytes, digest: bytes) -> bool:
    try:
        return bcrypt.checkpw(candidate, digest)
    except ValueError:
        # Malformed digest or over-long password
        return False
