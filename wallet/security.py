import hashlib
import hmac
import secrets

_SCRYPT_N = 16384
_SCRYPT_R = 8
_SCRYPT_P = 1
_KEY_LEN = 64


def _derive(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode(), salt=salt.encode(), n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P, dklen=_KEY_LEN
    )


def hash_password(password: str) -> str:
    """Return ``<hex digest>.<salt>``."""
    salt = secrets.token_hex(16)
    return f"{_derive(password, salt).hex()}.{salt}"


def check_password(password: str, stored: str) -> bool:
    hashed, _, salt = stored.partition(".")
    if not hashed or not salt:
        return False
    return hmac.compare_digest(bytes.fromhex(hashed), _derive(password, salt))
