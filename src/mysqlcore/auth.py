"""
Password scrambles for the authentication plugins the driver speaks.
"""
import hashlib

__all__ = [
    'NATIVE_PASSWORD',
    'CACHING_SHA2_PASSWORD',
    'SUPPORTED_PLUGINS',
    'scramble_native_password',
    'scramble_caching_sha2',
    'scramble',
]

NATIVE_PASSWORD = 'mysql_native_password'
CACHING_SHA2_PASSWORD = 'caching_sha2_password'
SUPPORTED_PLUGINS = (NATIVE_PASSWORD, CACHING_SHA2_PASSWORD)

SCRAMBLE_LENGTH = 20


def _xor(left: bytes, right: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(left, right))


def scramble_native_password(password: bytes, salt: bytes) -> bytes:
    """SHA1(password) XOR SHA1(salt + SHA1(SHA1(password))).
    """
    if not password:
        return b''
    stage1 = hashlib.sha1(password).digest()
    stage2 = hashlib.sha1(stage1).digest()
    digest = hashlib.sha1(salt[:SCRAMBLE_LENGTH] + stage2).digest()
    return _xor(stage1, digest)


def scramble_caching_sha2(password: bytes, salt: bytes) -> bytes:
    """SHA256(password) XOR SHA256(SHA256(SHA256(password)) + salt).
    """
    if not password:
        return b''
    stage1 = hashlib.sha256(password).digest()
    stage2 = hashlib.sha256(stage1).digest()
    digest = hashlib.sha256(stage2 + salt[:SCRAMBLE_LENGTH]).digest()
    return _xor(stage1, digest)


def scramble(plugin: str, password: bytes, salt: bytes) -> bytes:
    """Auth response for `plugin`.

    Raises ValueError for plugins the driver does not implement.
    """
    if plugin in {NATIVE_PASSWORD, ''}:
        return scramble_native_password(password, salt)
    if plugin == CACHING_SHA2_PASSWORD:
        return scramble_caching_sha2(password, salt)
    raise ValueError(f'Unsupported authentication plugin: {plugin}')
