"""Connection descriptor decoding.

A descriptor reaches the gateway either as a plain connection string from the
server configuration or as an encrypted blob in the ``X-Connection-Encrypted``
request header. Encrypted blobs use the OpenSSL passphrase format that
CryptoJS ``AES.encrypt(text, passphrase)`` produces, so browser clients can
encrypt without any key-derivation setup of their own.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import re
from dataclasses import dataclass, field
from urllib.parse import parse_qs, unquote, urlsplit

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DecryptionError, MalformedConnectionString

DEFAULT_PORT = 5432
DEFAULT_SSL_MODE = "prefer"
SSL_MODES = {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}

_SALT_HEADER = b"Salted__"
_SALT_SIZE = 8
_KEY_SIZE = 32
_IV_SIZE = 16
_DECRYPTION_FAILED = "Unable to decrypt connection descriptor"

_KEYWORD_PAIR_RE = re.compile(r"\s*([A-Za-z_]+)\s*=\s*('(?:[^'\\]|\\.)*'|\S*)")
_KEYWORD_ALIASES = {
    "host": "host",
    "hostaddr": "host",
    "port": "port",
    "dbname": "database",
    "database": "database",
    "user": "user",
    "password": "password",
    "sslmode": "ssl_mode",
}


@dataclass(frozen=True)
class ConnectionConfig:
    host: str
    database: str
    user: str
    password: str | None = field(default=None, repr=False)
    port: int = DEFAULT_PORT
    ssl_mode: str = DEFAULT_SSL_MODE

    def safe_dsn(self) -> str:
        return f"postgresql://{self.user}@{self.host}:{self.port}/{self.database}"

    def pool_kwargs(self) -> dict[str, object]:
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
            "ssl": self.ssl_mode,
        }


def _evp_bytes_to_key(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    derived = b""
    block = b""
    while len(derived) < _KEY_SIZE + _IV_SIZE:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:_KEY_SIZE], derived[_KEY_SIZE:_KEY_SIZE + _IV_SIZE]


def _build_config(fields: dict[str, str]) -> ConnectionConfig:
    missing = [name for name in ("host", "user", "database") if not fields.get(name)]
    if missing:
        raise MalformedConnectionString(
            f"Connection string is missing required fields: {', '.join(missing)}"
        )

    port_raw = fields.get("port") or str(DEFAULT_PORT)
    try:
        port = int(port_raw)
    except ValueError as exc:
        raise MalformedConnectionString(f"Invalid port: {port_raw!r}") from exc
    if not 0 < port < 65536:
        raise MalformedConnectionString(f"Invalid port: {port_raw!r}")

    ssl_mode = (fields.get("ssl_mode") or DEFAULT_SSL_MODE).lower()
    if ssl_mode not in SSL_MODES:
        raise MalformedConnectionString(f"Unsupported sslmode: {ssl_mode!r}")

    return ConnectionConfig(
        host=fields["host"],
        port=port,
        database=fields["database"],
        user=fields["user"],
        password=fields.get("password") or None,
        ssl_mode=ssl_mode,
    )


def _parse_uri(value: str) -> dict[str, str]:
    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError as exc:
        raise MalformedConnectionString("Connection string is not a valid URI") from exc
    if parts.scheme not in ("postgres", "postgresql"):
        raise MalformedConnectionString(f"Unsupported connection scheme: {parts.scheme!r}")

    query = parse_qs(parts.query)
    fields = {
        "host": unquote(parts.hostname or ""),
        "port": str(port) if port is not None else "",
        "user": unquote(parts.username or ""),
        "password": unquote(parts.password or ""),
        "database": unquote(parts.path.lstrip("/")),
    }
    if "sslmode" in query:
        fields["ssl_mode"] = query["sslmode"][-1]
    return fields


def _parse_keywords(value: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    position = 0
    while position < len(value):
        match = _KEYWORD_PAIR_RE.match(value, position)
        if not match or match.end() == position:
            if value[position:].strip():
                raise MalformedConnectionString("Connection string is not parseable")
            break
        key, raw = match.group(1).lower(), match.group(2)
        if raw.startswith("'") and raw.endswith("'") and len(raw) >= 2:
            raw = re.sub(r"\\(.)", r"\1", raw[1:-1])
        target = _KEYWORD_ALIASES.get(key)
        if target is not None:
            fields[target] = raw
        position = match.end()
    return fields


def parse_connection_string(value: str) -> ConnectionConfig:
    """Parse a URI or libpq keyword/value connection string."""
    value = (value or "").strip()
    if not value:
        raise MalformedConnectionString("Connection string is empty")
    if "://" in value:
        return _build_config(_parse_uri(value))
    if "=" not in value:
        raise MalformedConnectionString("Connection string is not parseable")
    return _build_config(_parse_keywords(value))


class DescriptorCodec:
    def __init__(self, secret_key: str | None) -> None:
        self._secret_key = secret_key.encode("utf-8") if secret_key else None

    def decode(self, raw: str, encrypted: bool = False) -> ConnectionConfig:
        plaintext = self.decrypt(raw) if encrypted else raw
        return parse_connection_string(plaintext)

    def decrypt(self, blob: str) -> str:
        # One message for every failure mode so callers cannot tell a wrong key
        # from a corrupted blob.
        if self._secret_key is None:
            raise DecryptionError(_DECRYPTION_FAILED)
        try:
            data = base64.b64decode(blob.strip(), validate=True)
            if len(data) <= len(_SALT_HEADER) + _SALT_SIZE or not data.startswith(_SALT_HEADER):
                raise ValueError("missing salt header")
            salt = data[len(_SALT_HEADER):len(_SALT_HEADER) + _SALT_SIZE]
            ciphertext = data[len(_SALT_HEADER) + _SALT_SIZE:]
            key, iv = _evp_bytes_to_key(self._secret_key, salt)
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except (binascii.Error, ValueError, UnicodeDecodeError):
            raise DecryptionError(_DECRYPTION_FAILED) from None

    def encrypt(self, plaintext: str) -> str:
        if self._secret_key is None:
            raise DecryptionError("No encryption key configured")
        salt = os.urandom(_SALT_SIZE)
        key, iv = _evp_bytes_to_key(self._secret_key, salt)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(_SALT_HEADER + salt + ciphertext).decode("ascii")
