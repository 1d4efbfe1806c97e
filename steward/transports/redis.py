"""Redis transport for cross-process delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..config import RedisConfig
from ..contracts import ReconcileRequest
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """One Redis list per topic: producers LPUSH, consumers BRPOP."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        block_timeout: int = 1,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.block_timeout = block_timeout
        self._redis: Optional[Any] = None

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisTransport":
        return cls(host=config.host, port=config.port, db=config.db, password=config.password)

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"steward:{topic}"

    async def connect(self) -> None:
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()
        logger.info(f"Connected to Redis at {self.host}:{self.port}/{self.db}")

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def publish(self, topic: str, message: ReconcileRequest) -> None:
        client = await self._client()
        await client.lpush(self.queue_name(topic), message.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, ReconcileRequest]]:
        client = await self._client()
        queue_name = self.queue_name(topic)
        loop = asyncio.get_running_loop()
        deadline = None if lifespan is None else loop.time() + lifespan

        while deadline is None or loop.time() < deadline:
            result = await client.brpop(queue_name, timeout=self.block_timeout)
            if not result:
                continue
            _, message_json = result
            try:
                message = ReconcileRequest.from_json(message_json)
            except ValidationError as e:
                logger.warning(f"Dropping unreadable message on {queue_name}: {e}")
                continue
            yield message_json, message

    async def ack(self, raw_message: str) -> None:
        # BRPOP already removed the message from the list.
        pass
