"""RAG question answering over the user's documents.

Data flow:
  1. RETRIEVE -- run semantic search for the question with a small top-K
                 (3 by default).
  2. SHORT-CIRCUIT -- if nothing clears the relevance threshold, return a
                 fixed "nothing found" answer without calling a generative
                 model, so the model never answers from an empty context.
  3. GENERATE -- join the retrieved chunk texts with ``"\\n---\\n"`` and ask
                 the current provider to answer from that context only.
  4. ATTRIBUTE -- report the distinct source document ids in retrieval order.

Search failures surface as :class:`SearchFailedError`; generation failures
propagate unchanged so the caller knows the answer was not produced.

``answer_from_context`` skips retrieval: the caller passes the context text
(or a document id whose title and body become the context) and the model
answers from that alone.
"""

from __future__ import annotations

import time

import structlog

from src.interfaces.document_store import IDocumentStore
from src.models.rag import ContextAnswer, QAAnswer
from src.providers.ai.factory import AIProviderFactory
from src.services.search_service import SemanticSearchService
from src.utils.errors import DocumentNotFoundError
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

NO_CONTEXT_ANSWER = (
    "I couldn't find any relevant information in your documents to answer this question."
)

CONTEXT_SEPARATOR = "\n---\n"

# Direct-context limits: both lengths must be strictly greater.
MIN_QUESTION_LENGTH = 5
MIN_CONTEXT_LENGTH = 20
MAX_CONTEXT_LENGTH = 30_000


class QAService:
    """Answers questions from retrieved document chunks.

    Parameters
    ----------
    search_service:
        Retrieval step.
    provider_factory:
        Supplies the generative provider for the answer.
    top_k:
        Number of chunks to retrieve as context.
    document_store:
        Resolves ``doc_id`` for :meth:`answer_from_context`.
    """

    def __init__(
        self,
        search_service: SemanticSearchService,
        provider_factory: AIProviderFactory,
        top_k: int = 3,
        document_store: IDocumentStore | None = None,
    ) -> None:
        self._search = search_service
        self._factory = provider_factory
        self._top_k = top_k
        self._documents = document_store

    async def answer(self, question: str) -> QAAnswer:
        """Answer *question* using the most relevant stored chunks.

        Raises
        ------
        ValueError
            If *question* is blank.
        src.utils.errors.SearchFailedError
            If retrieval fails.
        src.utils.errors.ProviderUnavailableError
            If no generative provider is reachable.
        src.utils.errors.ProviderRequestError
            If the generation call fails.
        """
        results = await self._search.search(question, top_k=self._top_k)

        if not results:
            logger.info("qa_no_context", question_length=len(question))
            return QAAnswer(answer=NO_CONTEXT_ANSWER, context_used=[])

        context = CONTEXT_SEPARATOR.join(r.content for r in results)
        context_used = list(dict.fromkeys(r.doc_id for r in results))

        provider = await self._factory.get_provider()
        try:
            response = await provider.answer_question(question, context)
        except Exception as exc:
            logger.error(
                "qa_generation_failed",
                provider=provider.get_provider_name(),
                error=str(exc),
            )
            raise

        logger.info(
            "qa_answered",
            provider=provider.get_provider_name(),
            model=response.model,
            chunks=len(results),
            documents=len(context_used),
            tokens_in=response.tokens_in,
            tokens_out=response.tokens_out,
        )
        return QAAnswer(answer=response.text, context_used=context_used)

    async def answer_from_context(
        self,
        question: str,
        context: str | None = None,
        doc_id: str | None = None,
    ) -> ContextAnswer:
        """Answer *question* from raw *context* or the stored document *doc_id*.

        Context longer than 30,000 characters is truncated.

        Raises
        ------
        ValueError
            If both or neither of *context* and *doc_id* are given, the
            question is 5 characters or fewer, or the context is 20
            characters or fewer.
        DocumentNotFoundError
            If *doc_id* does not exist.
        """
        if context and doc_id:
            raise ValueError("Provide either context or doc_id, not both")
        if not context and not doc_id:
            raise ValueError("Either context or doc_id must be provided")

        if doc_id:
            document = await self._documents.get_document(doc_id) if self._documents else None
            if document is None:
                raise DocumentNotFoundError(message=f"Document {doc_id} not found")
            context = f"{document.title}\n\n{document.content}"

        question = question.strip()
        if len(question) <= MIN_QUESTION_LENGTH:
            raise ValueError(
                f"Question is too short (more than {MIN_QUESTION_LENGTH} characters required)"
            )
        if len(context) <= MIN_CONTEXT_LENGTH:
            raise ValueError(
                f"Context is too short to answer questions "
                f"(more than {MIN_CONTEXT_LENGTH} characters required)"
            )
        if len(context) > MAX_CONTEXT_LENGTH:
            logger.warning(
                "qa_context_truncated",
                original_length=len(context),
                max_length=MAX_CONTEXT_LENGTH,
            )
            context = context[:MAX_CONTEXT_LENGTH]

        provider = await self._factory.get_provider()
        start = time.perf_counter()
        try:
            response = await provider.answer_question(question, context)
        except Exception as exc:
            logger.error(
                "qa_generation_failed",
                provider=provider.get_provider_name(),
                error=str(exc),
            )
            raise
        elapsed = time.perf_counter() - start

        logger.info(
            "qa_context_answered",
            provider=provider.get_provider_name(),
            model=response.model,
            source=f"doc:{doc_id}" if doc_id else "direct",
            context_length=len(context),
            duration_ms=round(elapsed * 1000, 2),
        )
        return ContextAnswer(
            answer=response.text,
            question=question,
            provider=provider.get_provider_name(),
            model=response.model,
            processing_time=elapsed,
            tokens_in=response.tokens_in,
            tokens_out=response.tokens_out,
        )
