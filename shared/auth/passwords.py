"""Password hashing for accounts managed by this backend (volunteers)"""
import hashlib
import hmac
import os

SALT_LENGTH = 16
ITERATIONS = 100000


def hash_password(password: str) -> str:
    """PBKDF2-SHA256; returns salt+hash as hex"""
    salt = os.urandom(SALT_LENGTH)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, ITERATIONS)
    return (salt + digest).hex()


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        raw = bytes.fromhex(password_hash)
    except ValueError:
        return False
    if len(raw) < SALT_LENGTH + 32:
        return False

    salt, stored = raw[:SALT_LENGTH], raw[SALT_LENGTH:]
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, ITERATIONS)
    return hmac.compare_digest(digest, stored)
