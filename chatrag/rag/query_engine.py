"""
Query engine: turns a user query into a context string for the LLM prompt.

Pipeline per call (no state is kept between calls):
    preprocess -> expand -> multi-search -> deduplicate & rank
    -> budget select -> assemble context

``search`` never raises. Any failure yields an empty context so the
conversation can still be answered without retrieved knowledge.
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from chatrag import config
from chatrag.models.knowledge import ContextBundle, HealthReport, HealthStatus, QueryResult
from chatrag.rag.knowledge_base import KnowledgeBase

logger = logging.getLogger(__name__)

# Results sharing this many leading characters count as duplicates
DEDUP_PREFIX_LENGTH = 100

_LEADING_REQUEST = re.compile(r"^(教えて|質問|答えて)[、。:：\s]*")
_TRAILING_PARTICLES = re.compile(
    r"(\s*(を教えてください|教えてください|を教えて|ですか|ますか|でしょうか|ください|please))*[\s?？。!！]*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class SearchOptions:
    """Per-call overrides for the engine's defaults. None keeps the default."""
    max_results: Optional[int] = None
    similarity_threshold: Optional[float] = None
    max_context_length: Optional[int] = None
    enable_query_expansion: Optional[bool] = None
    max_query_expansions: Optional[int] = None


def preprocess_query(query: str) -> str:
    """Trim the query and strip leading request words and trailing politeness/question particles."""
    processed = (query or "").strip()
    stripped = _LEADING_REQUEST.sub("", processed)
    stripped = _TRAILING_PARTICLES.sub("", stripped).strip()
    return stripped or processed


def deduplicate_and_rank(results: List[QueryResult]) -> List[QueryResult]:
    """Collapse results sharing a content prefix, keeping the most similar, sorted descending."""
    unique: Dict[str, QueryResult] = {}
    for result in results:
        key = result.content[:DEDUP_PREFIX_LENGTH]
        existing = unique.get(key)
        if existing is None or existing.similarity < result.similarity:
            unique[key] = result
    return sorted(unique.values(), key=lambda r: r.similarity, reverse=True)


def select_within_budget(results: List[QueryResult], max_length: int) -> List[QueryResult]:
    """Greedily take ranked results while their total length fits max_length.

    If not even the top result fits, it is truncated to max_length and
    marked truncated.
    """
    selected: List[QueryResult] = []
    total_length = 0

    for result in results:
        content_length = len(result.content)
        if total_length + content_length <= max_length:
            selected.append(result)
            total_length += content_length
        elif not selected:
            selected.append(replace(result, content=result.content[:max_length], truncated=True))
            break
        else:
            break

    return selected


def build_context(results: List[QueryResult], header: str = config.RAG_CONTEXT_HEADER) -> str:
    if not results:
        return ""

    blocks = []
    for index, result in enumerate(results):
        title = result.title or f"Source {index + 1}"
        blocks.append(f"[{title}]\n{result.content}")
    return f"{header}\n\n" + "\n\n".join(blocks)


class QueryEngine:
    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        max_results: int = config.RAG_MAX_RESULTS,
        similarity_threshold: float = config.RAG_SIMILARITY_THRESHOLD,
        max_context_length: int = config.RAG_MAX_CONTEXT_LENGTH,
        enable_query_expansion: bool = config.RAG_QUERY_EXPANSION,
        max_query_expansions: int = config.RAG_MAX_QUERY_EXPANSIONS,
        context_header: str = config.RAG_CONTEXT_HEADER,
    ):
        self.knowledge_base = knowledge_base
        self.defaults = SearchOptions(
            max_results=max_results,
            similarity_threshold=similarity_threshold,
            max_context_length=max_context_length,
            enable_query_expansion=enable_query_expansion,
            max_query_expansions=max_query_expansions,
        )
        self.context_header = context_header

    def _resolve(self, options: Optional[SearchOptions]) -> SearchOptions:
        if options is None:
            return self.defaults
        overrides = {k: v for k, v in vars(options).items() if v is not None}
        return replace(self.defaults, **overrides)

    def expand_query(self, query: str, max_expansions: int) -> List[str]:
        """Build short auxiliary queries from the query's keywords."""
        if not query or len(query) < 3 or max_expansions <= 0:
            return []

        keywords = self.knowledge_base.extract_keywords(query)
        if len(keywords) < 2:
            return []

        expansions = []
        if len(keywords) >= 3:
            expansions.append(" ".join(keywords[:3]))
            expansions.append(f"{keywords[0]} {keywords[-1]}")
        else:
            expansions.append(" ".join(keywords))

        return expansions[:max_expansions]

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> ContextBundle:
        """Retrieve and assemble context for ``query``. Never raises."""
        try:
            opts = self._resolve(options)
            logger.debug(f"[QUERY_ENGINE] Processing RAG query: \"{(query or '')[:50]}...\"")

            processed_query = preprocess_query(query)
            if not processed_query:
                logger.debug("[QUERY_ENGINE] Empty query, skipping retrieval")
                return ContextBundle(metadata=self._summary([], [], [], "", []))

            queries = [processed_query]
            if opts.enable_query_expansion:
                try:
                    expanded = self.expand_query(processed_query, opts.max_query_expansions)
                except Exception as e:
                    logger.warning(f"[QUERY_ENGINE] Query expansion failed: {e}")
                    expanded = []
                queries.extend(q for q in expanded if q != processed_query)

            all_results: List[QueryResult] = []
            for q in queries:
                all_results.extend(
                    await self.knowledge_base.search_knowledge(q, opts.max_results, opts.similarity_threshold)
                )

            unique_results = deduplicate_and_rank(all_results)
            selected = select_within_budget(unique_results, opts.max_context_length)
            context = build_context(selected, self.context_header)

            metadata = self._summary(all_results, unique_results, selected, context, queries)
            logger.debug(f"[QUERY_ENGINE] RAG search complete: {len(selected)} results selected for context")
            return ContextBundle(context=context, results=selected, metadata=metadata)
        except Exception as e:
            logger.error(f"[QUERY_ENGINE] RAG search failed: {e}")
            return ContextBundle(metadata={"error": str(e)}, error=str(e))

    async def generate_context_for_prompt(self, query: str, options: Optional[SearchOptions] = None) -> str:
        bundle = await self.search(query, options)
        return bundle.context

    @staticmethod
    def _summary(
        all_results: List[QueryResult],
        unique_results: List[QueryResult],
        selected: List[QueryResult],
        context: str,
        queries: List[str],
    ) -> Dict[str, Any]:
        return {
            "total_results": len(all_results),
            "unique_results": len(unique_results),
            "selected_results": len(selected),
            "context_length": len(context),
            "top_similarity": selected[0].similarity if selected else 0,
            "queries": queries,
        }

    async def check_health(self) -> HealthReport:
        try:
            kb_health = await self.knowledge_base.check_health()
        except Exception as e:
            return HealthReport(HealthStatus.UNHEALTHY, f"Query engine error: {e}")

        if kb_health.status == HealthStatus.UNHEALTHY:
            message = "Query engine is unhealthy due to knowledge base issues"
        else:
            message = f"Query engine is {kb_health.status.value}"
        return HealthReport(kb_health.status, message, {"knowledge_base": kb_health})
