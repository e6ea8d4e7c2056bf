"""
Converts the graph's dual-channel stream into client-facing events.

Synthesizer tokens are buffered until the quality check resolves:
- verdict passes, or retries are exhausted: the buffer is flushed
- verdict asks for a retry: the buffer is discarded (the retry streams anew)
- quality checking disabled: the buffer is flushed when the synthesizer finishes

Answers written without tokens (clarification, escalation, fallbacks, the
appended disclaimer) are forwarded as text deltas computed from state
snapshots, only while nothing is buffered.

The adapter never raises: a failure of the underlying stream becomes an
``error`` event, and exactly one ``done`` event always ends the stream.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Iterator, List, Optional

import structlog

from api.orchestrators.graph_engine import NodeId, StreamChunk
from api.schemas.agent_state import RunState, StreamEvent, WebSearchResult
from libs.common.errors import error_code

logger = structlog.get_logger(__name__)

STATUS_LABELS: Dict[str, str] = {
    NodeId.CLASSIFIER.value: "Understanding your question...",
    NodeId.QUERY_PLANNER.value: "Planning search strategy...",
    NodeId.RETRIEVER.value: "Searching governance documents...",
    NodeId.RETRIEVAL_EXPANDER.value: "Broadening search...",
    NodeId.RESEARCHER.value: "Searching the web...",
    NodeId.SYNTHESIZER.value: "Preparing your answer...",
    NodeId.QUALITY_CHECKER.value: "Reviewing answer quality...",
    NodeId.ESCALATE.value: "Preparing your answer...",
}

BUFFERED_NODES = frozenset({NodeId.SYNTHESIZER.value})


def _event(type_: str, **data: Any) -> StreamEvent:
    return StreamEvent(type=type_, data=data)


class StreamAdapter:
    """Stateful translation of one run's ``StreamChunk`` sequence.

    A new adapter is needed per run.
    """

    def __init__(self, *, quality_checker_enabled: bool = True, max_quality_retries: int = 1):
        self.quality_checker_enabled = quality_checker_enabled
        self.max_quality_retries = max_quality_retries

        self._buffer: List[str] = []
        self._sent_text = ""
        self._flushed = False
        self._last_status_node: Optional[str] = None
        self._citations_sent = False
        self._escalation_sent = False
        self._discovered_urls: List[WebSearchResult] = []

    @property
    def answer_text(self) -> str:
        """Answer text delivered to the client so far."""
        return self._sent_text

    async def events(self, chunks: AsyncIterator[StreamChunk]) -> AsyncIterator[StreamEvent]:
        errored = False
        try:
            async for chunk in chunks:
                if chunk.kind == "token":
                    for event in self._on_token(chunk):
                        yield event
                elif chunk.state is not None:
                    for event in self._on_snapshot(chunk.node_id, chunk.state):
                        yield event
        except Exception as e:
            errored = True
            logger.error("Agent stream failed", error=str(e), error_code=error_code(e))
            for event in self._flush():
                yield event
            yield _event("error", message=str(e) or "An unexpected error occurred", code=error_code(e))
        finally:
            # Stops the graph run when the consumer goes away early
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        # Paths without a quality verdict end with tokens still buffered
        for event in self._flush():
            yield event

        if not errored and self._discovered_urls:
            yield _event(
                "discovered-urls",
                urls=[result.model_dump() for result in self._discovered_urls],
            )

        yield _event("done")

    def _status(self, node_id: str) -> Iterator[StreamEvent]:
        label = STATUS_LABELS.get(node_id)
        if label and not self._flushed and node_id != self._last_status_node:
            self._last_status_node = node_id
            yield _event("status", status=label)

    def _on_token(self, chunk: StreamChunk) -> Iterator[StreamEvent]:
        yield from self._status(chunk.node_id)
        if chunk.node_id in BUFFERED_NODES and chunk.text:
            self._buffer.append(chunk.text)

    def _send(self, text: str) -> StreamEvent:
        self._sent_text += text
        return _event("text-delta", text=text)

    def _flush(self) -> Iterator[StreamEvent]:
        if not self._buffer:
            return
        buffered, self._buffer = self._buffer, []
        self._flushed = True
        for text in buffered:
            yield self._send(text)

    def _discard(self) -> Iterator[StreamEvent]:
        self._buffer = []
        # The retry re-announces itself
        self._last_status_node = None
        if self._sent_text:
            self._sent_text = ""
            yield _event("answer-reset")

    def _on_snapshot(self, node_id: str, state: RunState) -> Iterator[StreamEvent]:
        yield from self._status(node_id)

        if node_id in BUFFERED_NODES:
            answer = state.answer or ""
            # Fallback answers are written without tokens; the snapshot is authoritative
            if "".join(self._buffer) != answer:
                self._buffer = [answer] if answer else []
            if not self.quality_checker_enabled:
                yield from self._flush()
        elif node_id == NodeId.QUALITY_CHECKER.value:
            result = state.quality_check_result
            if (
                result is None
                or result.passed
                or state.quality_retry_count >= self.max_quality_retries
            ):
                yield from self._flush()
            else:
                yield from self._discard()
        else:
            yield from self._answer_delta(state.answer)

        if not self._citations_sent and state.citations:
            self._citations_sent = True
            yield _event("citations", citations=[c.model_dump() for c in state.citations])

        if not self._escalation_sent and state.escalation is not None:
            self._escalation_sent = True
            yield _event("escalation", escalation=state.escalation.model_dump())

        if state.web_search_result_urls:
            self._discovered_urls = list(state.web_search_result_urls)

    def _answer_delta(self, answer: Optional[str]) -> Iterator[StreamEvent]:
        if self._buffer or not answer or answer == self._sent_text:
            return
        if not answer.startswith(self._sent_text):
            self._sent_text = ""
            yield _event("answer-reset")
        yield self._send(answer[len(self._sent_text):])
