"""Encrypted storage and lookup of per-tenant LINE channel credentials."""

from __future__ import annotations

import base64
import binascii
import json
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Sequence

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import select

from chapter_bot.config import get_settings
from chapter_bot.db import session_scope
from chapter_bot.models import TenantSecret

CHANNEL_ID_KEY = "line_channel_id"
ACCESS_TOKEN_KEY = "line_access_token"
CHANNEL_SECRET_KEY = "line_channel_secret"
CREDENTIAL_KEYS = (CHANNEL_ID_KEY, ACCESS_TOKEN_KEY, CHANNEL_SECRET_KEY)

ENVELOPE_VERSION = 1
NONCE_SIZE = 12
TAG_SIZE = 16

logger = structlog.get_logger(__name__)


class CredentialDecryptionError(Exception):
    """Raised when an envelope cannot be authenticated or parsed."""


@dataclass(frozen=True)
class LineCredentials:
    channel_id: str
    access_token: str
    channel_secret: str


@dataclass(frozen=True)
class TenantCredentials:
    tenant_id: str
    credentials: LineCredentials


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


class CredentialCipher:
    """AES-256-GCM encryption of short secrets into a JSON envelope.

    The primary key encrypts; decryption tries the primary key and then every
    retired key so rows written before a rotation stay readable.
    """

    def __init__(self, key: bytes, *, previous_keys: Sequence[bytes] = ()) -> None:
        for candidate in (key, *previous_keys):
            if len(candidate) != 32:
                raise ValueError("Encryption keys must be 32 bytes long.")
        self._primary = AESGCM(key)
        self._fallbacks = [AESGCM(item) for item in previous_keys]

    def encrypt(self, value: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._primary.encrypt(nonce, value.encode("utf-8"), None)
        envelope = {
            "v": ENVELOPE_VERSION,
            "nonce": _b64(nonce),
            "tag": _b64(sealed[-TAG_SIZE:]),
            "ciphertext": _b64(sealed[:-TAG_SIZE]),
        }
        return json.dumps(envelope, separators=(",", ":"))

    def decrypt(self, envelope: str) -> str:
        try:
            data = json.loads(envelope)
            nonce = _unb64(data["nonce"])
            tag = _unb64(data["tag"])
            ciphertext = _unb64(data["ciphertext"])
        except (TypeError, ValueError, KeyError, binascii.Error) as exc:
            raise CredentialDecryptionError("Malformed credential envelope.") from exc

        if data.get("v") != ENVELOPE_VERSION or len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise CredentialDecryptionError("Unsupported credential envelope.")

        for aead in (self._primary, *self._fallbacks):
            try:
                plaintext = aead.decrypt(nonce, ciphertext + tag, None)
            except InvalidTag:
                continue
            return plaintext.decode("utf-8")

        raise CredentialDecryptionError("Credential envelope failed authentication.")

    def needs_rotation(self, envelope: str) -> bool:
        """Return True when *envelope* only opens with a retired key."""

        try:
            data = json.loads(envelope)
            nonce = _unb64(data["nonce"])
            sealed = _unb64(data["ciphertext"]) + _unb64(data["tag"])
            self._primary.decrypt(nonce, sealed, None)
        except InvalidTag:
            return True
        except (TypeError, ValueError, KeyError, binascii.Error):
            return False
        return False


@lru_cache()
def get_cipher() -> CredentialCipher:
    """Build the process-wide cipher from configuration."""

    settings = get_settings()
    previous = [bytes.fromhex(item) for item in settings.line_encryption_previous_keys]
    if settings.line_encryption_key:
        return CredentialCipher(bytes.fromhex(settings.line_encryption_key), previous_keys=previous)

    logger.warning(
        "encryption_key_missing",
        detail="LINE_ENCRYPTION_KEY not set; using a random key, stored credentials will not survive a restart",
    )
    return CredentialCipher(os.urandom(32), previous_keys=previous)


def encrypt_value(value: str) -> str:
    return get_cipher().encrypt(value)


def decrypt_value(envelope: str) -> str:
    return get_cipher().decrypt(envelope)


def save_credentials(tenant_id: str, *, access_token: str, channel_secret: str, channel_id: str) -> None:
    """Encrypt and upsert the three credential rows for *tenant_id*."""

    values = {
        CHANNEL_ID_KEY: channel_id,
        ACCESS_TOKEN_KEY: access_token,
        CHANNEL_SECRET_KEY: channel_secret,
    }
    with session_scope() as session:
        existing = {
            row.secret_key: row
            for row in session.scalars(
                select(TenantSecret).where(TenantSecret.tenant_id == tenant_id)
            )
        }
        for key, value in values.items():
            encrypted = encrypt_value(value)
            row = existing.get(key)
            if row is None:
                session.add(TenantSecret(tenant_id=tenant_id, secret_key=key, secret_value=encrypted))
            else:
                row.secret_value = encrypted

    logger.info("line_credentials_saved", tenant_id=tenant_id)


def _load_rows(tenant_id: str) -> Dict[str, str]:
    with session_scope() as session:
        rows = session.execute(
            select(TenantSecret.secret_key, TenantSecret.secret_value).where(
                TenantSecret.tenant_id == tenant_id,
                TenantSecret.secret_key.in_(CREDENTIAL_KEYS),
            )
        ).all()
    return {key: value for key, value in rows}


def resolve_credentials(tenant_id: str) -> LineCredentials | None:
    """Return usable credentials for *tenant_id* or None when not configured."""

    rows = _load_rows(tenant_id)
    missing = [key for key in CREDENTIAL_KEYS if not rows.get(key)]
    if missing:
        logger.info("line_credentials_not_configured", tenant_id=tenant_id, missing=missing)
        return None

    try:
        decrypted = {key: decrypt_value(rows[key]) for key in CREDENTIAL_KEYS}
    except CredentialDecryptionError:
        logger.error("line_credentials_decrypt_failed", tenant_id=tenant_id)
        return None

    if not all(decrypted.values()):
        logger.info("line_credentials_incomplete", tenant_id=tenant_id)
        return None

    return LineCredentials(
        channel_id=decrypted[CHANNEL_ID_KEY],
        access_token=decrypted[ACCESS_TOKEN_KEY],
        channel_secret=decrypted[CHANNEL_SECRET_KEY],
    )


def resolve_by_bot_id(bot_id: str) -> TenantCredentials | None:
    """Find the tenant owning *bot_id* by decrypting every stored channel id.

    Linear in the number of tenants; rows that fail to decrypt belong to
    unrelated tenants and are skipped.
    """

    if not bot_id:
        return None

    with session_scope() as session:
        rows = session.execute(
            select(TenantSecret.tenant_id, TenantSecret.secret_value).where(
                TenantSecret.secret_key == CHANNEL_ID_KEY
            )
        ).all()

    for tenant_id, envelope in rows:
        try:
            channel_id = decrypt_value(envelope)
        except CredentialDecryptionError:
            logger.warning("line_channel_id_decrypt_failed", tenant_id=tenant_id)
            continue
        if channel_id != bot_id:
            continue

        credentials = resolve_credentials(tenant_id)
        if credentials is None:
            return None
        return TenantCredentials(tenant_id=tenant_id, credentials=credentials)

    logger.info("line_bot_not_found", bot_id=bot_id)
    return None


def rotate_tenant_credentials(tenant_id: str) -> int:
    """Re-encrypt rows of *tenant_id* still sealed with a retired key.

    Returns the number of rows rewritten.
    """

    cipher = get_cipher()
    rotated = 0
    with session_scope() as session:
        rows = session.scalars(select(TenantSecret).where(TenantSecret.tenant_id == tenant_id)).all()
        for row in rows:
            if not cipher.needs_rotation(row.secret_value):
                continue
            try:
                plaintext = cipher.decrypt(row.secret_value)
            except CredentialDecryptionError:
                logger.warning("line_credential_unrecoverable", tenant_id=tenant_id, secret_key=row.secret_key)
                continue
            row.secret_value = cipher.encrypt(plaintext)
            rotated += 1

    if rotated:
        logger.info("line_credentials_rotated", tenant_id=tenant_id, rows=rotated)
    return rotated
