"""
Политика доступа к роли broadcaster.
"""

import hmac
import logging
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class AccessPolicy:
    """
    Решает, может ли соединение занять слот broadcaster.
    Чистый предикат: без побочных эффектов и без ожиданий.
    """

    def authorize(self, origin: str, token: Optional[str] = None) -> bool:
        raise NotImplementedError


class AllowAll(AccessPolicy):
    def authorize(self, origin, token=None):
        return True


class AddressPolicy(AccessPolicy):
    """Разрешает роль только с адресов из списка."""

    def __init__(self, addresses: Iterable[str]):
        self.addresses = frozenset(addresses)

    def authorize(self, origin, token=None):
        return origin in self.addresses


class TokenPolicy(AccessPolicy):
    """Разрешает роль, если в register-broadcaster передан верный токен."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("empty broadcaster token")
        self._secret = secret.encode("utf-8")

    def authorize(self, origin, token=None):
        if not isinstance(token, str):
            return False
        return hmac.compare_digest(token.encode("utf-8"), self._secret)


def build_policy(settings) -> AccessPolicy:
    if settings.BROADCASTER_TOKEN:
        logger.info("Роль broadcaster: по токену")
        return TokenPolicy(settings.BROADCASTER_TOKEN)
    if settings.broadcaster_addresses:
        logger.info(f"Роль broadcaster: адреса {settings.broadcaster_addresses}")
        return AddressPolicy(settings.broadcaster_addresses)
    logger.warning("Роль broadcaster открыта для всех (BROADCASTER_TOKEN и BROADCASTER_ADDRESSES не заданы)")
    return AllowAll()
