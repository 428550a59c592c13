# storefront/services/order_cache.py
import json
from typing import Any

import redis

from storefront.domain.schemas import OrderPreparation
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, ORDER_CACHE_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CacheService:
    """Generic JSON key/value store with TTL on top of redis."""

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def set(self, key: str, value: Any, ttl: int) -> None:
        if not isinstance(value, str):
            value = json.dumps(value)
        #SET key value EX ttl
        self.redis.set(name=key, value=value, ex=ttl)

    @redis_retry()
    def get(self, key: str) -> str | None:
        return self.redis.get(key)

    @redis_retry()
    def remove(self, key: str) -> None:
        self.redis.delete(key)


class OrderPreparationCache:
    """
    Order proposals stored twice, under order_by_session:{session} and
    order_by_number:{number}. The two writes are independent, a reader
    that misses on the session key must fall back to the number key.
    """

    SESSION_PREFIX = "order_by_session:"
    NUMBER_PREFIX = "order_by_number:"

    def __init__(self, cache: CacheService | None = None, ttl: int | None = None):
        self.cache = cache or CacheService()
        self.ttl = ttl or ORDER_CACHE_TTL_SECONDS

    @classmethod
    def session_key(cls, session_id: str) -> str:
        return f"{cls.SESSION_PREFIX}{session_id}"

    @classmethod
    def number_key(cls, order_number: str) -> str:
        return f"{cls.NUMBER_PREFIX}{order_number}"

    def save(self, proposal: OrderPreparation) -> None:
        payload = proposal.model_dump_json()
        self.cache.set(self.session_key(proposal.session_id), payload, self.ttl)
        self.cache.set(self.number_key(proposal.order_number), payload, self.ttl)
        logger.info(f"Cached proposal {proposal.order_number} for session {proposal.session_id}, ttl {self.ttl}s")

    def load(self, session_id: str | None, order_number: str) -> OrderPreparation | None:
        proposal = None
        if session_id:
            proposal = self._read(self.session_key(session_id))

        if proposal is None or proposal.order_number != order_number:
            if session_id:
                logger.info(f"Proposal {order_number} not under session {session_id}, trying order number key")
            proposal = self._read(self.number_key(order_number))

        if proposal is not None and proposal.order_number != order_number:
            logger.error(f"Cached proposal mismatch: expected {order_number}, got {proposal.order_number}")
            return None
        return proposal

    def discard(self, session_id: str, order_number: str) -> None:
        self.cache.remove(self.session_key(session_id))
        self.cache.remove(self.number_key(order_number))

    def _read(self, key: str) -> OrderPreparation | None:
        raw = self.cache.get(key)
        if raw is None:
            return None
        return OrderPreparation.model_validate_json(raw)
