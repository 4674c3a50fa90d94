# =============================================================================
# Credential Verifier
# =============================================================================
#
# Password hashing with PBKDF2-HMAC-SHA256:
#   - random 32-byte salt per digest
#   - tunable work factor (Settings.password_hash_iterations)
#   - digest records its own iteration count, so raising the cost never
#     invalidates existing hashes
#
# Digest format: pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>
#
# Never log or return a digest or a secret from this module.
#
# =============================================================================

from __future__ import annotations

import hashlib
import secrets
from functools import lru_cache

from forgeguard.config import get_settings

ALGORITHM = "pbkdf2_sha256"


def _derive(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        iterations=iterations,
    ).hex()


def hash_password(password: str, iterations: int | None = None) -> str:
    """Hash a password. Returns a self-describing digest string."""
    iterations = iterations or get_settings().password_hash_iterations
    salt = secrets.token_hex(32)
    return f"{ALGORITHM}${iterations}${salt}${_derive(password, salt, iterations)}"


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its digest.

    A malformed digest and a wrong password both return False; callers
    cannot tell them apart.
    """
    try:
        algorithm, iterations, salt, stored_hash = password_hash.split("$")
        if algorithm != ALGORITHM:
            return False
        candidate = _derive(password, salt, int(iterations))
    except (ValueError, AttributeError, TypeError):
        return False
    return secrets.compare_digest(candidate, stored_hash)


def needs_rehash(password_hash: str) -> bool:
    """True if the digest was made with a lower cost than currently configured."""
    try:
        algorithm, iterations, _, _ = password_hash.split("$")
        return algorithm != ALGORITHM or int(iterations) < get_settings().password_hash_iterations
    except (ValueError, AttributeError):
        return True


@lru_cache
def _dummy_hash(iterations: int) -> str:
    return hash_password(secrets.token_urlsafe(16), iterations)


def verify_dummy(password: str) -> bool:
    """
    Spend the same work as a real verification, always failing.

    Used when the account does not exist so that response time does not
    reveal whether a username is registered.
    """
    verify_password(password, _dummy_hash(get_settings().password_hash_iterations))
    return False
