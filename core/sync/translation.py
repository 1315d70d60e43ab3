"""Batched translation flush.

Pulled records with translatable fields are not translated one by one.
Their (remote_id, local_id) pairs are buffered per remote model and
written in one batch per model when ``flush`` is called.
"""

from types import MappingProxyType
from typing import Awaitable, Callable, Dict, List, Mapping, Tuple

from core.observability.logging import get_logger

logger = get_logger(__name__)


DEFAULT_MAX_PER_MODEL = 5000

# (remote_model, {remote_id: local_id}) -> None
TranslationWriter = Callable[[str, Dict[int, int]], Awaitable[None]]


class TranslationAccumulator:
    """Buffer of ``remote_model -> {remote_id -> local_id}``.

    Usage:
        acc = TranslationAccumulator(writer)
        acc.accumulate("product.template", 42, 100)
        await acc.flush()
    """

    def __init__(self, writer: TranslationWriter, max_per_model: int = DEFAULT_MAX_PER_MODEL):
        self._writer = writer
        self.max_per_model = max_per_model
        self._buffer: Dict[str, Dict[int, int]] = {}
        # Full model buffers waiting for the next flush, one writer call each
        self._sealed: List[Tuple[str, Dict[int, int]]] = []
        self.flush_count = 0

    @property
    def buffer(self) -> Mapping[str, Mapping[int, int]]:
        """Read-only view of the buffered pairs."""
        return MappingProxyType({model: MappingProxyType(pairs) for model, pairs in self._buffer.items()})

    def pending_count(self) -> int:
        sealed = sum(len(pairs) for _, pairs in self._sealed)
        return sealed + sum(len(pairs) for pairs in self._buffer.values())

    def accumulate(self, remote_model: str, remote_id: int, local_id: int) -> None:
        """Buffer a pair; a full model buffer is sealed as its own batch first."""
        remote_id = int(remote_id)
        pairs = self._buffer.setdefault(remote_model, {})
        if remote_id not in pairs and len(pairs) >= self.max_per_model:
            logger.info(
                f"Translation buffer full for {remote_model}, queued for flush",
                extra_fields={"pairs": len(pairs)},
            )
            self._sealed.append((remote_model, pairs))
            pairs = self._buffer[remote_model] = {}
        pairs[remote_id] = int(local_id)

    async def flush(self) -> int:
        """Write every non-empty model buffer, then clear it.

        A batch whose writer call raises is logged and kept for the next
        flush; later models are still written.

        Returns:
            Number of pairs written
        """
        self.flush_count += 1

        batches = self._sealed + [(model, pairs) for model, pairs in self._buffer.items() if pairs]
        self._sealed = []
        self._buffer = {}

        written = 0
        for model, pairs in batches:
            try:
                await self._writer(model, pairs)
            except Exception as e:
                logger.error(
                    f"Translation flush failed for {model}, kept for retry: {e}",
                    extra_fields={"pairs": len(pairs)},
                )
                self._sealed.append((model, pairs))
                continue
            written += len(pairs)
        if written:
            logger.debug(f"Flushed {written} translation pair(s) across {len(batches)} model(s)")
        return written
