"""Agent orchestrator for the athlete support service.

Assembles the graph from settings and feature flags, and runs it in two
modes:
- ``invoke()`` returns the final answer, citations and escalation
- ``stream()`` yields client-facing :class:`StreamEvent` values

Both load the rolling conversation summary before the run and schedule a
fire-and-forget summary refresh once the answer exists.
"""

import asyncio
import time
from typing import AsyncIterator, List, Optional, Sequence

import structlog
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.vectorstores import InMemoryVectorStore, VectorStore
from langchain_openai import OpenAIEmbeddings
from pydantic import BaseModel, Field

from api.composer.context import message_text
from api.composer.prompts import build_summary_messages
from api.llm.llm_service import LLMService, ModelFactory, ModelRole
from api.orchestrators.edges import (
    make_needs_more_info,
    make_route_by_quality,
    route_by_domain,
    route_to_answer,
)
from api.orchestrators.graph_engine import END, START, CompiledGraph, GraphEngine, NodeId
from api.orchestrators.nodes import (
    ClassifierNode,
    EscalateNode,
    QualityCheckerNode,
    QueryPlannerNode,
    ResearcherNode,
    RetrievalExpanderNode,
    RetrieverNode,
    SynthesizerNode,
    citation_builder_node,
    clarify_node,
    disclaimer_guard_node,
    emotional_support_node,
)
from api.orchestrators.stream_adapter import StreamAdapter
from api.schemas.agent_state import Citation, EscalationInfo, RunState, StreamEvent, create_initial_state
from api.tools.bm25_provider import BM25LexicalSearch, CorpusDocument, matches_filter
from api.tools.retrieval_engine import HybridRetriever, LangChainVectorSearch, VectorSearch
from api.tools.web_search import DisabledWebSearch, TavilyWebSearch, WebSearch
from libs.caching.redis_client import get_redis_client
from libs.common.errors import OperationTimeoutError
from libs.common.settings import Settings
from libs.memory.checkpoint_store import CheckpointStore, InMemoryCheckpointStore, RedisCheckpointStore
from libs.memory.conversation_memory import (
    ConversationMemory,
    InMemorySummaryStore,
    RedisSummaryStore,
    Summarizer,
)
from libs.resilience.circuit_breaker import BreakerRegistry
from libs.resilience.retry import retry_from_settings

logger = structlog.get_logger(__name__)


class AgentOutput(BaseModel):
    """Final result of a blocking run."""

    answer: str = Field(description="Answer text, including any appended disclaimer")
    citations: List[Citation] = Field(default_factory=list)
    escalation: Optional[EscalationInfo] = None


def build_graph(
    settings: Settings,
    *,
    llm: LLMService,
    retriever: HybridRetriever,
    web_search: WebSearch,
    checkpointer: Optional[CheckpointStore] = None,
) -> CompiledGraph:
    """Wire the agent graph. Disabled features are left out of the graph entirely."""
    planner_on = settings.feature_query_planner
    expansion_on = settings.feature_retrieval_expansion
    support_on = settings.feature_emotional_support
    checker_on = settings.feature_quality_checker

    graph = GraphEngine()
    graph.add_node(NodeId.CLASSIFIER, ClassifierNode(llm))
    graph.add_node(NodeId.CLARIFY, clarify_node)
    if planner_on:
        graph.add_node(NodeId.QUERY_PLANNER, QueryPlannerNode(llm))
    graph.add_node(NodeId.RETRIEVER, RetrieverNode(retriever, settings))
    if expansion_on:
        graph.add_node(NodeId.RETRIEVAL_EXPANDER, RetrievalExpanderNode(llm, retriever, settings))
    graph.add_node(NodeId.RESEARCHER, ResearcherNode(web_search))
    if support_on:
        graph.add_node(NodeId.EMOTIONAL_SUPPORT, emotional_support_node)
    graph.add_node(NodeId.SYNTHESIZER, SynthesizerNode(llm))
    if checker_on:
        graph.add_node(NodeId.QUALITY_CHECKER, QualityCheckerNode(llm, settings))
    graph.add_node(NodeId.ESCALATE, EscalateNode(llm))
    graph.add_node(NodeId.CITATION_BUILDER, citation_builder_node)
    graph.add_node(NodeId.DISCLAIMER_GUARD, disclaimer_guard_node)

    # Entry and domain routing
    graph.add_edge(START, NodeId.CLASSIFIER)
    graph.add_conditional_edges(
        NodeId.CLASSIFIER,
        route_by_domain,
        {
            "clarify": NodeId.CLARIFY,
            "escalate": NodeId.ESCALATE,
            "retrieve": NodeId.QUERY_PLANNER if planner_on else NodeId.RETRIEVER,
        },
    )
    if planner_on:
        graph.add_edge(NodeId.QUERY_PLANNER, NodeId.RETRIEVER)

    # Evidence gathering
    answer_routes = {
        "synthesize": NodeId.SYNTHESIZER,
        "support": NodeId.EMOTIONAL_SUPPORT if support_on else NodeId.SYNTHESIZER,
    }
    evidence_routes = {
        **answer_routes,
        "expand": NodeId.RETRIEVAL_EXPANDER if expansion_on else NodeId.RESEARCHER,
        "research": NodeId.RESEARCHER,
    }
    needs_more_info = make_needs_more_info(settings)
    graph.add_conditional_edges(NodeId.RETRIEVER, needs_more_info, evidence_routes)
    if expansion_on:
        graph.add_conditional_edges(NodeId.RETRIEVAL_EXPANDER, needs_more_info, evidence_routes)
    graph.add_conditional_edges(NodeId.RESEARCHER, route_to_answer, answer_routes)
    if support_on:
        graph.add_edge(NodeId.EMOTIONAL_SUPPORT, NodeId.SYNTHESIZER)

    # Generation and review
    if checker_on:
        graph.add_edge(NodeId.SYNTHESIZER, NodeId.QUALITY_CHECKER)
        graph.add_conditional_edges(
            NodeId.QUALITY_CHECKER,
            make_route_by_quality(settings),
            {"accept": NodeId.CITATION_BUILDER, "retry": NodeId.SYNTHESIZER},
        )
    else:
        graph.add_edge(NodeId.SYNTHESIZER, NodeId.CITATION_BUILDER)

    # Terminal edges
    graph.add_edge(NodeId.ESCALATE, NodeId.CITATION_BUILDER)
    graph.add_edge(NodeId.CITATION_BUILDER, NodeId.DISCLAIMER_GUARD)
    graph.add_edge(NodeId.DISCLAIMER_GUARD, END)
    graph.add_edge(NodeId.CLARIFY, END)

    compiled = graph.compile(checkpointer=checkpointer, max_steps=settings.graph_max_steps)
    logger.info(
        "Agent graph compiled",
        nodes=compiled.node_ids,
        query_planner=planner_on,
        retrieval_expansion=expansion_on,
        emotional_support=support_on,
        quality_checker=checker_on,
    )
    return compiled


def format_transcript(messages: Sequence[BaseMessage]) -> str:
    lines = []
    for message in messages:
        role = "User" if message.type == "human" else "Assistant"
        lines.append(f"{role}: {message_text(message)}")
    return "\n".join(lines)


def make_summarizer(llm: LLMService) -> Summarizer:
    """Summary generation through the summary model role."""

    async def summarize(messages: Sequence[BaseMessage], existing_summary: Optional[str]) -> str:
        text = await llm.invoke(
            ModelRole.SUMMARY,
            build_summary_messages(format_transcript(messages), existing_summary),
        )
        return text.strip()

    return summarize


class AgentOrchestrator:
    """Runs the compiled agent graph with conversation memory."""

    def __init__(
        self,
        graph: CompiledGraph,
        settings: Settings,
        memory: Optional[ConversationMemory] = None,
        breakers: Optional[BreakerRegistry] = None,
    ):
        self.graph = graph
        self.settings = settings
        self.memory = memory
        self.breakers = breakers

    async def _initial_state(
        self,
        messages: Sequence[BaseMessage],
        conversation_id: Optional[str],
        user_sport: Optional[str],
    ) -> RunState:
        summary = await self.memory.load(conversation_id) if self.memory else None
        return create_initial_state(
            list(messages),
            conversation_id=conversation_id,
            conversation_summary=summary,
            user_sport=user_sport,
        )

    def _remember(self, state: RunState, answer: str) -> None:
        if self.memory is None or not state.conversation_id or not answer:
            return
        self.memory.schedule_update(
            state.conversation_id,
            [*state.messages, AIMessage(content=answer)],
            state.conversation_summary,
        )

    async def invoke(
        self,
        messages: Sequence[BaseMessage],
        conversation_id: Optional[str] = None,
        user_sport: Optional[str] = None,
    ) -> AgentOutput:
        """Run the graph to completion under the invoke deadline.

        Raises:
            OperationTimeoutError: the run exceeded ``invoke_deadline_ms``.
            AgentError: the graph failed to produce a final state.
        """
        start_time = time.time()
        state = await self._initial_state(messages, conversation_id, user_sport)
        deadline_ms = self.settings.invoke_deadline_ms
        logger.info("Agent invoke start", conversation_id=conversation_id, trace_id=state.trace_id)

        try:
            final = await asyncio.wait_for(
                self.graph.run(state, deadline_ms=deadline_ms, thread_id=state.trace_id),
                timeout=deadline_ms / 1000,
            )
        except OperationTimeoutError:
            raise
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError("agent.invoke", deadline_ms) from e

        answer = final.answer or ""
        self._remember(final, answer)
        logger.info(
            "Agent invoke completed",
            answer_length=len(answer),
            citation_count=len(final.citations),
            escalated=final.escalation is not None,
            duration_ms=round((time.time() - start_time) * 1000, 2),
            trace_id=state.trace_id,
        )
        return AgentOutput(answer=answer, citations=final.citations, escalation=final.escalation)

    async def stream(
        self,
        messages: Sequence[BaseMessage],
        conversation_id: Optional[str] = None,
        user_sport: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield stream events for one run; always ends with a single ``done``."""
        start_time = time.time()
        state = await self._initial_state(messages, conversation_id, user_sport)
        logger.info("Agent stream start", conversation_id=conversation_id, trace_id=state.trace_id)

        adapter = StreamAdapter(
            quality_checker_enabled=self.settings.feature_quality_checker,
            max_quality_retries=self.settings.max_quality_retries,
        )
        chunks = self.graph.stream(
            state,
            deadline_ms=self.settings.stream_deadline_ms,
            thread_id=state.trace_id,
        )
        errored = False
        async for event in adapter.events(chunks):
            if event.type == "error":
                errored = True
            yield event

        if not errored:
            self._remember(state, adapter.answer_text)
        logger.info(
            "Agent stream completed",
            errored=errored,
            answer_length=len(adapter.answer_text),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            trace_id=state.trace_id,
        )


def in_memory_vector_search(settings: Settings) -> LangChainVectorSearch:
    """OpenAI embeddings over a process-local store, for development without a vector database."""
    embeddings = OpenAIEmbeddings(model=settings.embedding_model, api_key=settings.openai_api_key)
    return LangChainVectorSearch(
        InMemoryVectorStore(embeddings),
        scores_are_similarities=True,
        filter_adapter=lambda metadata_filter: (lambda doc: matches_filter(doc.metadata, metadata_filter)),
    )


async def build_orchestrator(
    settings: Settings,
    *,
    vector_store: Optional[VectorStore] = None,
    vector_search: Optional[VectorSearch] = None,
    corpus: Optional[Sequence[CorpusDocument]] = None,
    model_factory: Optional[ModelFactory] = None,
) -> AgentOrchestrator:
    """Construct production dependencies and the compiled graph.

    Uses Redis for summaries and checkpoints when ``redis_url`` is reachable
    and in-memory stores otherwise; Tavily web search only when an API key
    is configured.
    """
    breakers = BreakerRegistry.from_settings(settings)
    llm = LLMService(settings, breakers.get(BreakerRegistry.LLM), model_factory)

    if vector_search is None:
        vector_search = LangChainVectorSearch(vector_store) if vector_store is not None else in_memory_vector_search(settings)
    retriever = HybridRetriever(
        vector_search,
        breakers.get(BreakerRegistry.VECTOR_SEARCH),
        BM25LexicalSearch(corpus),
        breakers.get(BreakerRegistry.LEXICAL_SEARCH),
        rrf_k=settings.rrf_k,
        vector_weight=settings.rrf_vector_weight,
        retrying=retry_from_settings(settings),
    )

    if settings.tavily_api_key:
        web_search: WebSearch = TavilyWebSearch(
            settings.tavily_api_key,
            breakers.get(BreakerRegistry.WEB_SEARCH),
            max_results=settings.web_search_max_results,
            retrying=retry_from_settings(settings),
        )
    else:
        logger.warning("Tavily API key not configured, web search disabled")
        web_search = DisabledWebSearch()

    redis_client = await get_redis_client(settings.redis_url)
    if redis_client is not None:
        checkpointer: CheckpointStore = RedisCheckpointStore(redis_client, ttl_seconds=settings.checkpoint_ttl_seconds)
        summary_store = RedisSummaryStore(redis_client)
    else:
        checkpointer = InMemoryCheckpointStore()
        summary_store = InMemorySummaryStore()

    memory = None
    if settings.feature_conversation_memory:
        memory = ConversationMemory(summary_store, make_summarizer(llm), ttl_seconds=settings.summary_ttl_seconds)

    graph = build_graph(settings, llm=llm, retriever=retriever, web_search=web_search, checkpointer=checkpointer)
    return AgentOrchestrator(graph, settings, memory=memory, breakers=breakers)
