"""Summarisation, key-point extraction and AI status.

Thin orchestration over the provider factory for the non-RAG AI features:

* ``summarize`` accepts raw text *or* a document id (never both).  A
  document is summarised as ``title + "\\n\\n" + content``.
* ``summarize_many`` summarises documents one after another and records a
  per-document error instead of failing the whole batch.
* ``extract_key_points`` asks for a numbered list and parses the bullet
  lines out of the reply.
* ``get_status`` reports which providers answer right now; it degrades to
  an "unavailable" snapshot instead of raising.
"""

from __future__ import annotations

import re
import time

import structlog

from src.interfaces.document_store import IDocumentStore
from src.models.rag import AIStatus, BulkSummaryItem, SummaryLength, SummaryResult
from src.providers.ai.factory import AIProviderFactory
from src.utils.errors import DocumentNotFoundError
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

MIN_SUMMARY_LENGTH = 50

# "-" and "*" need trailing whitespace so "**Bold:**" headings are not bullets.
_BULLET_RE = re.compile(r"^\s*(?:\d+[.)]\s*|[-*]\s+|•\s*)")


def parse_key_points(text: str, count: int) -> list[str]:
    """Return up to *count* bullet or numbered lines from *text*, markers stripped."""
    points: list[str] = []
    for line in text.splitlines():
        if not _BULLET_RE.match(line):
            continue
        point = _BULLET_RE.sub("", line, count=1).strip()
        if point:
            points.append(point)
        if len(points) >= count:
            break
    return points


class SummaryService:
    """Summaries and status on top of :class:`AIProviderFactory`."""

    def __init__(
        self,
        provider_factory: AIProviderFactory,
        document_store: IDocumentStore,
    ) -> None:
        self._factory = provider_factory
        self._documents = document_store

    async def summarize(
        self,
        text: str | None = None,
        doc_id: str | None = None,
        length: SummaryLength = SummaryLength.MEDIUM,
    ) -> SummaryResult:
        """Summarise raw *text* or the stored document *doc_id*.

        Raises
        ------
        ValueError
            If both or neither of *text* and *doc_id* are given, or the
            content is shorter than 50 characters.
        DocumentNotFoundError
            If *doc_id* does not exist.
        """
        if text and doc_id:
            raise ValueError("Provide either text or doc_id, not both")
        if not text and not doc_id:
            raise ValueError("Either text or doc_id must be provided")

        if text:
            content, source = text, "direct"
        else:
            document = await self._documents.get_document(doc_id)
            if document is None:
                raise DocumentNotFoundError(message=f"Document {doc_id} not found")
            content, source = f"{document.title}\n\n{document.content}", f"doc:{document.id}"

        if len(content.strip()) < MIN_SUMMARY_LENGTH:
            raise ValueError(
                f"Content too short to summarize (minimum {MIN_SUMMARY_LENGTH} characters)"
            )

        provider = await self._factory.get_provider()
        start = time.perf_counter()
        response = await provider.summarize(content, length)
        elapsed = time.perf_counter() - start

        logger.info(
            "summary_generated",
            provider=provider.get_provider_name(),
            model=response.model,
            source=source,
            length=length.value,
            duration_ms=round(elapsed * 1000, 2),
        )
        return SummaryResult(
            summary=response.text,
            provider=provider.get_provider_name(),
            model=response.model,
            length=length,
            source=source,
            original_text_length=len(content),
            tokens_in=response.tokens_in,
            tokens_out=response.tokens_out,
            processing_time=elapsed,
        )

    async def summarize_many(
        self,
        doc_ids: list[str],
        length: SummaryLength = SummaryLength.MEDIUM,
    ) -> list[BulkSummaryItem]:
        """Summarise each document in *doc_ids*, in order.

        A document that cannot be summarised gets an item with ``error`` set
        and an empty summary; the rest of the batch still runs.
        """
        items: list[BulkSummaryItem] = []
        for doc_id in doc_ids:
            try:
                result = await self.summarize(doc_id=doc_id, length=length)
            except Exception as exc:
                logger.warning("bulk_summary_item_failed", doc_id=doc_id, error=str(exc))
                items.append(BulkSummaryItem(doc_id=doc_id, error=str(exc)))
            else:
                items.append(BulkSummaryItem(doc_id=doc_id, summary=result.summary))

        failed = sum(1 for item in items if item.error is not None)
        logger.info(
            "bulk_summary_completed",
            total=len(items),
            successful=len(items) - failed,
            failed=failed,
        )
        return items

    async def extract_key_points(self, text: str, count: int = 5) -> list[str]:
        """Return up to *count* key points from *text*."""
        if not text or not text.strip():
            raise ValueError("Text must not be empty")
        if count < 1:
            raise ValueError(f"count must be >= 1, got {count}")

        provider = await self._factory.get_provider()
        prompt = (
            f"Extract the {count} most important key points from this text. "
            f"Return only the key points as a numbered list:\n\n{text}"
        )
        response = await provider.summarize(prompt, SummaryLength.MEDIUM)
        points = parse_key_points(response.text, count)
        logger.info(
            "key_points_extracted",
            provider=provider.get_provider_name(),
            requested=count,
            extracted=len(points),
        )
        return points

    async def get_status(self) -> AIStatus:
        """Return which providers are reachable and which one serves requests."""
        try:
            available = await self._factory.get_available_providers()
            current = await self._factory.get_provider()
        except Exception as exc:
            logger.warning("ai_status_unavailable", error=str(exc))
            return AIStatus(available=False)

        return AIStatus(
            available=bool(available),
            providers=available,
            current_provider=current.get_provider_name(),
            model=current.get_model_name(),
        )
