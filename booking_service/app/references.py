import asyncio
import logging
from uuid import uuid4

from . import config, errors

logger = logging.getLogger(__name__)


class ReferenceGenerator:
    """Builds human-facing references such as ``BK3F09A1C2D7``.

    Candidates carry 40 random bits from a UUID4 and are checked against storage
    through the ``exists`` callback before being handed out; the unique
    constraint on the reference column backs the check up at commit time.
    """

    def __init__(self, max_attempts: int = None, backoff: float = None, token_factory=None):
        self.max_attempts = max_attempts or config.REFERENCE_MAX_ATTEMPTS
        self.backoff = config.REFERENCE_BACKOFF_SECONDS if backoff is None else backoff
        self._token_factory = token_factory or (lambda: uuid4().hex[:10].upper())

    def candidate(self, prefix: str) -> str:
        return f"{prefix}{self._token_factory()}"

    async def _claim(self, prefix: str, exists) -> str:
        reference = self.candidate(prefix)
        if await exists(reference):
            raise errors.ReferenceCollision(reference)
        return reference

    async def next(self, prefix: str, exists) -> str:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._claim(prefix, exists)
            except errors.ReferenceCollision as e:
                logger.warning(f"{e} (attempt {attempt}/{self.max_attempts})")
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff * 2 ** (attempt - 1))

        raise errors.ReferenceGenerationFailed(
            f"Could not generate a unique {prefix} reference after {self.max_attempts} attempts"
        )


# Общий генератор для всего сервиса
reference_generator = ReferenceGenerator()
