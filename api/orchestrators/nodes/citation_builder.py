"""citation_builder: attributable sources from retrieved documents and web results."""

from typing import Any, Dict, List, Set

import structlog

from api.schemas.agent_state import Citation, RunState

logger = structlog.get_logger(__name__)

SNIPPET_CHARS = 200


def _snippet(text: str) -> str:
    return text[:SNIPPET_CHARS] + ("..." if len(text) > SNIPPET_CHARS else "")


def build_citations(state: RunState) -> List[Citation]:
    """One citation per distinct ``url|section|title`` document, then one per web URL."""
    citations: List[Citation] = []
    seen: Set[str] = set()

    for doc in state.retrieved_documents:
        meta = doc.metadata
        key = f"{meta.source_url or ''}|{meta.section_title or ''}|{meta.document_title or ''}"
        if key in seen:
            continue
        seen.add(key)
        citations.append(
            Citation(
                title=meta.document_title or "Unknown Document",
                url=meta.source_url,
                document_type=meta.document_type or "document",
                section=meta.section_title,
                effective_date=meta.effective_date,
                snippet=_snippet(doc.content),
                authority_level=meta.authority_level,
            )
        )

    seen_urls: Set[str] = set()
    for result in state.web_search_result_urls:
        if result.url in seen_urls:
            continue
        seen_urls.add(result.url)
        citations.append(
            Citation(
                title=result.title or result.url,
                url=result.url,
                document_type="web",
                snippet=_snippet(result.content),
            )
        )

    return citations


async def citation_builder_node(state: RunState) -> Dict[str, Any]:
    citations = build_citations(state)
    logger.info("citation_builder completed", citation_count=len(citations), trace_id=state.trace_id)
    return {"citations": citations}
