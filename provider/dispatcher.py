"""
BatchDispatcher — send one message to many users through the gateway.

Recipients are split into fixed-size chunks.  Chunks run one after the
other; the sends inside a chunk run concurrently and the dispatcher waits
for all of them to settle before starting the next chunk, so at most
``chunk_size`` Provider calls are ever in flight.

Each recipient's outcome is captured on its own: a failed send becomes a
``success=False`` entry and never cancels or hides its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Sequence, TypeVar

from config.settings import Settings, config
from provider.errors import ErrorKind, InvalidRequest, ProviderError
from provider.gateway import ProviderGateway, require_user_key
from provider.schemas import BatchReport, DispatchError, DispatchResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNEXPECTED_ERROR = "Unexpected error while sending message"


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchDispatcher:
    def __init__(
        self,
        gateway: ProviderGateway,
        chunk_size: Optional[int] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Parameters
        ----------
        gateway    : anything exposing ``ProviderGateway.send_message``.
        chunk_size : max concurrent sends; defaults to ``TOSS_BATCH_CHUNK_SIZE``.
        """
        settings = settings or config
        self.gateway = gateway
        self.chunk_size = chunk_size if chunk_size is not None else settings.toss_batch_chunk_size
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

    # ── public entry point ──────────────────────────────────────────────

    async def send_batch(
        self,
        user_keys: Sequence[Any],
        template_set_code: str,
        context: Mapping[str, Any],
        deadline: Optional[float] = None,
    ) -> BatchReport:
        """
        Send ``template_set_code`` with ``context`` to every user in ``user_keys``.

        Parameters
        ----------
        deadline : optional overall time limit in seconds.  When it runs out the
            sends still in flight are cancelled and every recipient that did
            not complete (including later chunks) is reported with error
            kind ``Skipped``.

        Returns
        -------
        BatchReport whose ``results`` holds exactly one entry per input key.
        Entries within a chunk are in completion order; match them by
        ``user_key``, not by index.
        """
        keys = self._validate(user_keys, template_set_code, context)

        loop = asyncio.get_running_loop()
        expires_at = loop.time() + deadline if deadline is not None else None

        chunks = chunked(keys, self.chunk_size)
        results: List[DispatchResult] = []

        for chunk_num, chunk in enumerate(chunks, start=1):
            timeout: Optional[float] = None
            if expires_at is not None:
                timeout = expires_at - loop.time()
                if timeout <= 0:
                    results.extend(self._skipped(key) for key in chunk)
                    continue

            logger.info(
                "[Dispatcher] Chunk %d/%d — sending to %d user(s)",
                chunk_num, len(chunks), len(chunk),
            )
            results.extend(await self._send_chunk(chunk, template_set_code, context, timeout))

        report = BatchReport.from_results(results)
        logger.info(
            "[Dispatcher] Batch %s done: total=%d success=%d failed=%d skipped=%d",
            template_set_code,
            report.summary.total,
            report.summary.success,
            report.summary.failed,
            report.summary.skipped,
        )
        return report

    # ── chunk execution ─────────────────────────────────────────────────

    async def _send_chunk(
        self,
        chunk: List[int],
        template_set_code: str,
        context: Mapping[str, Any],
        timeout: Optional[float],
    ) -> List[DispatchResult]:
        settled: List[DispatchResult] = []
        tasks = {
            asyncio.create_task(self._send_one(key, template_set_code, context, settled)): key
            for key in chunk
        }

        _, pending = await asyncio.wait(tasks, timeout=timeout)

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in pending:
                if task.cancelled():
                    settled.append(self._skipped(tasks[task]))

        return settled

    async def _send_one(
        self,
        user_key: int,
        template_set_code: str,
        context: Mapping[str, Any],
        settled: List[DispatchResult],
    ) -> None:
        """Send to one user and append its outcome; never raises (except cancellation)."""
        try:
            result = await self.gateway.send_message(user_key, template_set_code, context)
        except ProviderError as exc:
            logger.warning(
                "[Dispatcher] Send to %s failed: %s (%s)", user_key, exc.message, exc.kind.value
            )
            settled.append(
                DispatchResult(
                    user_key=user_key,
                    success=False,
                    error=DispatchError(
                        message=exc.message,
                        code=str(exc.status_code),
                        kind=exc.kind.value,
                    ),
                )
            )
        except Exception as exc:
            logger.error("[Dispatcher] Send to %s raised: %r", user_key, exc)
            settled.append(
                DispatchResult(
                    user_key=user_key,
                    success=False,
                    error=DispatchError(message=_UNEXPECTED_ERROR),
                )
            )
        else:
            settled.append(DispatchResult(user_key=user_key, success=True, result=result))

    # ── helpers ─────────────────────────────────────────────────────────

    @staticmethod
    def _skipped(user_key: int) -> DispatchResult:
        return DispatchResult(
            user_key=user_key,
            success=False,
            error=DispatchError(
                message="Not sent: batch deadline exceeded",
                kind=ErrorKind.SKIPPED.value,
            ),
        )

    @staticmethod
    def _validate(
        user_keys: Sequence[Any],
        template_set_code: str,
        context: Mapping[str, Any],
    ) -> List[int]:
        if isinstance(user_keys, (str, bytes)) or not isinstance(user_keys, Sequence) or not user_keys:
            raise InvalidRequest("userKeys is required and must not be empty")
        if not template_set_code or not isinstance(template_set_code, str) or context is None:
            raise InvalidRequest("templateSetCode and context are required")
        if not isinstance(context, Mapping):
            raise InvalidRequest("context must be an object")
        return [require_user_key(key) for key in user_keys]
