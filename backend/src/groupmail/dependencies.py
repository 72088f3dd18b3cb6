"""FastAPI dependencies for outbound delivery and external lookups.

Override these in tests with app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends

from .config import Settings, get_settings
from .infrastructure.avatars import AvatarLookup, InMemoryAvatarCache, RedisAvatarCache
from .infrastructure.mailgun import MailServerClient
from .notifications.celery_sender import CeleryEmailSender
from .notifications.ports import EmailSenderPort


def get_email_sender() -> EmailSenderPort:
    """Outbound sender used by the pipeline (Celery queue)."""
    return CeleryEmailSender()


@lru_cache()
def _avatar_lookup(redis_url, timeout_seconds: float, ttl_seconds: int) -> AvatarLookup:
    cache = RedisAvatarCache.from_url(redis_url) if redis_url else InMemoryAvatarCache()
    return AvatarLookup(cache, timeout_seconds=timeout_seconds, ttl_seconds=ttl_seconds)


def get_avatar_lookup(settings: Settings = Depends(get_settings)) -> AvatarLookup:
    """Avatar lookup backed by Redis when REDIS_URL is set."""
    return _avatar_lookup(
        settings.REDIS_URL,
        settings.EXTERNAL_HTTP_TIMEOUT_SECONDS,
        settings.AVATAR_CACHE_TTL_SECONDS,
    )


def get_mail_server_client(settings: Settings = Depends(get_settings)) -> MailServerClient:
    return MailServerClient(
        api_key=settings.MAILGUN_API_KEY,
        domain=settings.group_email_domain,
        timeout_seconds=settings.EXTERNAL_HTTP_TIMEOUT_SECONDS,
    )
