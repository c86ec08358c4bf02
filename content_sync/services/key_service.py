"""Per-site shared secrets for the replication endpoints."""
import hmac
import logging
import secrets
import string

from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.config import settings
from content_sync.models.site import SiteApiKey
from content_sync.utils.encryption import get_encryptor

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_letters + string.digits


def generate_secret(length: int | None = None) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length or settings.API_KEY_LENGTH))


def _reveal(record: SiteApiKey) -> str:
    if not record.is_encrypted:
        return record.secret
    encryptor = get_encryptor()
    if encryptor is None:
        raise RuntimeError("ENCRYPTION_KEY is required to read encrypted site API keys")
    return encryptor.decrypt(record.secret)


async def get_api_key(db: AsyncSession, site_id: int) -> str | None:
    record = await db.get(SiteApiKey, site_id)
    if record is None:
        return None
    return _reveal(record)


async def get_or_create_api_key(db: AsyncSession, site_id: int) -> tuple[str, bool]:
    """Return (secret, created). A key is generated once per site."""
    existing = await get_api_key(db, site_id)
    if existing is not None:
        return existing, False

    secret = generate_secret()
    encryptor = get_encryptor()
    db.add(SiteApiKey(
        site_id=site_id,
        secret=encryptor.encrypt(secret) if encryptor else secret,
        is_encrypted=encryptor is not None,
    ))
    await db.flush()
    logger.info("Generated API key for site %d", site_id)
    return secret, True


async def verify_api_key(db: AsyncSession, site_id: int, presented: str | None) -> bool:
    if not presented:
        return False
    expected = await get_api_key(db, site_id)
    if expected is None:
        return False
    return hmac.compare_digest(expected.encode(), presented.encode())
