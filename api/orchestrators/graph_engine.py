"""Graph execution engine for the athlete support agent.

Nodes are async callables ``(RunState) -> dict`` registered under a closed
set of identifiers. Transitions are either fixed edges or conditional edges
driven by a router function and an explicit routing table. ``compile()``
validates the wiring up front so a bad routing target fails at startup
rather than in the middle of a user's run.

Two execution modes share one step loop:
- ``run()`` returns the final state
- ``stream()`` yields state snapshots after each node, interleaved with
  token fragments emitted by nodes while they generate
"""

from __future__ import annotations

import asyncio
import time
import typing
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Literal, Optional, Union

import structlog

from api.schemas.agent_state import RunState
from libs.common.errors import (
    AgentError,
    GraphCompileError,
    GraphDivergedError,
    NodeExecutionError,
    OperationTimeoutError,
)
from libs.memory.checkpoint_store import CheckpointStore

logger = structlog.get_logger(__name__)

START = "__start__"
END = "__end__"

DEFAULT_MAX_STEPS = 25


class NodeId(str, Enum):
    CLASSIFIER = "classifier"
    CLARIFY = "clarify"
    QUERY_PLANNER = "query_planner"
    RETRIEVER = "retriever"
    RETRIEVAL_EXPANDER = "retrieval_expander"
    RESEARCHER = "researcher"
    EMOTIONAL_SUPPORT = "emotional_support"
    SYNTHESIZER = "synthesizer"
    QUALITY_CHECKER = "quality_checker"
    ESCALATE = "escalate"
    CITATION_BUILDER = "citation_builder"
    DISCLAIMER_GUARD = "disclaimer_guard"


NodeFn = Callable[[RunState], Awaitable[Dict[str, Any]]]
Router = Callable[[RunState], str]
Target = Union[NodeId, str]


@dataclass(frozen=True)
class StreamChunk:
    """One item of the dual-channel stream.

    ``kind == "snapshot"``: ``state`` is the full merged state after ``node_id`` ran.
    ``kind == "token"``: ``text`` is a generation fragment emitted by ``node_id``.
    """

    kind: Literal["snapshot", "token"]
    node_id: str
    state: Optional[RunState] = None
    text: str = ""


# Bound by the engine to the node currently executing; None outside streaming runs
_token_sink: ContextVar[Optional[Callable[[str], None]]] = ContextVar("token_sink", default=None)


def emit_token(text: str) -> None:
    """Forward a generated text fragment to the active stream, if any."""
    sink = _token_sink.get()
    if sink is not None and text:
        sink(text)


@dataclass
class _Conditional:
    router: Router
    targets: Dict[str, str]


_Transition = Union[str, _Conditional]


def _node_key(node: Target) -> str:
    return node.value if isinstance(node, NodeId) else str(node)


class GraphEngine:
    """Builder for an executable agent graph."""

    def __init__(self):
        self._nodes: Dict[str, NodeFn] = {}
        self._transitions: Dict[str, List[_Transition]] = {}

    def add_node(self, node_id: NodeId, fn: NodeFn) -> "GraphEngine":
        key = _node_key(node_id)
        if key in (START, END):
            raise GraphCompileError(f"'{key}' is reserved")
        if key in self._nodes:
            raise GraphCompileError(f"Node '{key}' is already registered")
        self._nodes[key] = fn
        return self

    def add_edge(self, source: Target, target: Target) -> "GraphEngine":
        self._transitions.setdefault(_node_key(source), []).append(_node_key(target))
        return self

    def add_conditional_edges(
        self,
        source: Target,
        router: Router,
        targets: Dict[str, Target],
    ) -> "GraphEngine":
        table = {key: _node_key(target) for key, target in targets.items()}
        self._transitions.setdefault(_node_key(source), []).append(_Conditional(router, table))
        return self

    def compile(
        self,
        *,
        checkpointer: Optional[CheckpointStore] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> "CompiledGraph":
        """Validate the wiring and return an executable graph.

        Raises:
            GraphCompileError: missing entry edge, unknown target, a node with
                zero or several transitions, an unreachable node, a node that
                cannot reach END, or a router whose ``Literal`` return type
                has keys missing from its routing table.
        """
        if START not in self._transitions:
            raise GraphCompileError("No edge leaves START")

        known = set(self._nodes) | {END}
        for source, transitions in self._transitions.items():
            if source != START and source not in self._nodes:
                raise GraphCompileError(f"Edge source '{source}' is not a registered node")
            if len(transitions) > 1:
                raise GraphCompileError(f"Node '{source}' has {len(transitions)} outgoing transitions")
            for target in _targets_of(transitions[0]):
                if target not in known:
                    raise GraphCompileError(f"'{source}' routes to unregistered node '{target}'")
                if target == START:
                    raise GraphCompileError(f"'{source}' routes back to START")
            if isinstance(transitions[0], _Conditional):
                _check_router_table(source, transitions[0])

        for node in self._nodes:
            if node not in self._transitions:
                raise GraphCompileError(f"Node '{node}' has no outgoing transition")

        successors = {source: _targets_of(t[0]) for source, t in self._transitions.items()}
        reachable = _walk(START, successors)
        unreachable = set(self._nodes) - reachable
        if unreachable:
            raise GraphCompileError(f"Unreachable nodes: {sorted(unreachable)}")

        predecessors: Dict[str, List[str]] = {}
        for source, targets in successors.items():
            for target in targets:
                predecessors.setdefault(target, []).append(source)
        reaches_end = _walk(END, predecessors)
        stuck = (reachable - {START}) - reaches_end
        if START not in reaches_end or stuck:
            raise GraphCompileError(f"No path to END from: {sorted(stuck) or [START]}")

        entry = self._transitions[START][0]
        if isinstance(entry, _Conditional):
            raise GraphCompileError("START must have a fixed edge")

        logger.debug("Graph compiled", nodes=sorted(self._nodes), entry=entry)
        return CompiledGraph(
            nodes=dict(self._nodes),
            transitions={source: t[0] for source, t in self._transitions.items()},
            entry=entry,
            checkpointer=checkpointer,
            max_steps=max_steps,
        )


def _targets_of(transition: _Transition) -> List[str]:
    if isinstance(transition, _Conditional):
        return list(transition.targets.values())
    return [transition]


def _walk(origin: str, graph: Dict[str, List[str]]) -> set:
    seen = {origin}
    queue = deque([origin])
    while queue:
        for nxt in graph.get(queue.popleft(), []):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen


def _check_router_table(source: str, conditional: _Conditional) -> None:
    try:
        hints = typing.get_type_hints(conditional.router)
    except (NameError, TypeError) as e:
        logger.debug("Router annotations not resolvable", source=source, error=str(e))
        return
    returns = hints.get("return")
    if typing.get_origin(returns) is not Literal:
        return
    missing = sorted(set(typing.get_args(returns)) - set(conditional.targets))
    if missing:
        raise GraphCompileError(f"Router for '{source}' can return unwired keys: {missing}")


class _Finished:
    pass


@dataclass
class _Failed:
    error: BaseException


class CompiledGraph:
    """An executable, validated graph."""

    def __init__(
        self,
        *,
        nodes: Dict[str, NodeFn],
        transitions: Dict[str, _Transition],
        entry: str,
        checkpointer: Optional[CheckpointStore],
        max_steps: int,
    ):
        self._nodes = nodes
        self._transitions = transitions
        self._entry = entry
        self._checkpointer = checkpointer
        self._checkpointer_ready = False
        self.max_steps = max_steps

    @property
    def node_ids(self) -> List[str]:
        return list(self._nodes)

    async def run(
        self,
        initial_state: RunState,
        *,
        deadline_ms: Optional[float] = None,
        max_steps: Optional[int] = None,
        thread_id: Optional[str] = None,
    ) -> RunState:
        """Execute the graph to completion and return the final state."""
        return await self._execute(
            initial_state,
            deadline_ms=deadline_ms,
            max_steps=max_steps or self.max_steps,
            thread_id=thread_id,
            publish=None,
        )

    async def stream(
        self,
        initial_state: RunState,
        *,
        deadline_ms: Optional[float] = None,
        max_steps: Optional[int] = None,
        thread_id: Optional[str] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Execute the graph, yielding snapshots and token fragments in order.

        The deadline is checked before every yielded chunk; once it is
        exceeded :class:`OperationTimeoutError` is raised and nothing else is
        yielded.
        """
        queue: asyncio.Queue = asyncio.Queue()
        deadline_at = _deadline_at(deadline_ms)

        async def produce() -> None:
            try:
                await self._execute(
                    initial_state,
                    deadline_ms=deadline_ms,
                    max_steps=max_steps or self.max_steps,
                    thread_id=thread_id,
                    publish=queue.put_nowait,
                )
            except Exception as e:
                queue.put_nowait(_Failed(e))
            else:
                queue.put_nowait(_Finished())

        producer = asyncio.create_task(produce())
        try:
            while True:
                item = await queue.get()
                if isinstance(item, _Finished):
                    return
                if isinstance(item, _Failed):
                    raise item.error
                _check_deadline(deadline_at, deadline_ms, "graph.stream")
                yield item
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

    async def _execute(
        self,
        state: RunState,
        *,
        deadline_ms: Optional[float],
        max_steps: int,
        thread_id: Optional[str],
        publish: Optional[Callable[[StreamChunk], None]],
    ) -> RunState:
        deadline_at = _deadline_at(deadline_ms)
        current = self._entry
        step = 0

        while current != END:
            if step >= max_steps:
                logger.error("Graph diverged", max_steps=max_steps, last_node=current, trace_id=state.trace_id)
                raise GraphDivergedError(
                    f"Step limit {max_steps} reached before a terminal transition",
                    context={"max_steps": max_steps, "node_id": current},
                )
            _check_deadline(deadline_at, deadline_ms, "graph.run")

            state = await self._run_node(current, state, publish)
            step += 1

            if thread_id:
                await self._save_checkpoint(thread_id, step, state)
            if publish is not None:
                publish(StreamChunk(kind="snapshot", node_id=current, state=state))

            current = self._next(current, state)

        return state

    async def _run_node(
        self,
        node_id: str,
        state: RunState,
        publish: Optional[Callable[[StreamChunk], None]],
    ) -> RunState:
        fn = self._nodes[node_id]
        sink = None
        if publish is not None:
            def sink(text: str) -> None:
                publish(StreamChunk(kind="token", node_id=node_id, text=text))

        token = _token_sink.set(sink)
        start_time = time.perf_counter()
        try:
            patch = await fn(state)
        except AgentError:
            raise
        except Exception as e:
            logger.error("Node failed", node_id=node_id, error=str(e), error_type=type(e).__name__)
            raise NodeExecutionError(node_id, e) from e
        finally:
            _token_sink.reset(token)

        logger.debug(
            "Node step finished",
            node_id=node_id,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )

        if patch is None:
            return state
        if not isinstance(patch, dict):
            raise NodeExecutionError(node_id, TypeError(f"Node returned {type(patch).__name__}, expected dict"))
        try:
            return state.apply(patch)
        except ValueError as e:
            raise NodeExecutionError(node_id, e) from e

    def _next(self, node_id: str, state: RunState) -> str:
        transition = self._transitions[node_id]
        if not isinstance(transition, _Conditional):
            return transition
        try:
            key = transition.router(state)
        except Exception as e:
            raise NodeExecutionError(node_id, e) from e
        key = _node_key(key)
        if key not in transition.targets:
            raise NodeExecutionError(node_id, KeyError(f"Router returned unwired key '{key}'"))
        return transition.targets[key]

    async def _save_checkpoint(self, thread_id: str, step: int, state: RunState) -> None:
        if self._checkpointer is None:
            return
        try:
            if not self._checkpointer_ready:
                await self._checkpointer.setup()
                self._checkpointer_ready = True
            await self._checkpointer.save(thread_id, step, state.model_dump(mode="json"))
        except Exception as e:
            logger.warning("Checkpoint write failed", thread_id=thread_id, step=step, error=str(e))


def _deadline_at(deadline_ms: Optional[float]) -> Optional[float]:
    if deadline_ms is None:
        return None
    return time.monotonic() + deadline_ms / 1000


def _check_deadline(deadline_at: Optional[float], deadline_ms: Optional[float], operation: str) -> None:
    if deadline_at is not None and time.monotonic() >= deadline_at:
        raise OperationTimeoutError(operation, deadline_ms or 0)
