"""Graph executor with per-thread checkpoints and suspend/resume.

A graph is a set of named async nodes joined by static or conditional
edges. Each run advances in steps: every node of the current frontier
executes against the same snapshot of the state, the partial updates are
merged in frontier order, and the outgoing edges of the nodes that
continued are evaluated against the merged state to build the next
frontier.

A node that suspends stops its step: the nodes after it in the frontier
are not started, the updates of the nodes before it are kept, and the
checkpoint remembers which nodes to run when the thread is resumed.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import weakref
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Union

from broker_runtime import (
    Checkpoint,
    CheckpointStatus,
    CheckpointStore,
    ConversationState,
    Message,
    StateUpdate,
)

from ..metrics import GRAPH_RUN_LATENCY, GRAPH_RUNS, NODE_EXECUTIONS, SUSPENDED_THREADS
from .errors import (
    GraphCompileError,
    GraphError,
    GraphRecursionError,
    InvalidRouteError,
    NodeExecutionError,
    NothingToResumeError,
)
from .results import END, Completed, ExecutionResult, NodeOutcome, NodeResult, Suspended

logger = logging.getLogger(__name__)

NodeReturn = Union[NodeResult, StateUpdate, None]
NodeFunc = Callable[[ConversationState], Awaitable[NodeReturn]]
RouteDecision = Union[str, Sequence[str]]
Router = Callable[[ConversationState], RouteDecision]
Amendment = Callable[[Optional[Checkpoint]], Optional[StateUpdate]]

DEFAULT_RECURSION_LIMIT = 25


@dataclass
class ConditionalEdge:
    """A routing function and the targets it may return."""

    router: Router
    path_map: Optional[Set[str]] = None


def _dedupe(names: Iterable[str]) -> List[str]:
    """Drop duplicates and the terminal marker, keeping first occurrences."""
    seen: Set[str] = set()
    ordered = []
    for name in names:
        if name == END or name in seen:
            continue
        seen.add(name)
        ordered.append(name)
    return ordered


class GraphBuilder:
    """Collects nodes and edges and compiles them into a runnable graph."""

    def __init__(self) -> None:
        """Initialize an empty graph definition."""
        self._nodes: Dict[str, NodeFunc] = {}
        self._edges: Dict[str, str] = {}
        self._conditional_edges: Dict[str, ConditionalEdge] = {}
        self._entry_point: Optional[str] = None

    def add_node(self, name: str, func: NodeFunc) -> GraphBuilder:
        """Register a node.

        Args:
            name: Unique node name
            func: Async callable taking the state and returning a NodeResult,
                a StateUpdate, or None

        Returns:
            The builder, for chaining

        Raises:
            GraphCompileError: If the name is reserved or already registered
        """
        if name == END:
            raise GraphCompileError(f"'{END}' is reserved for the terminal marker")
        if name in self._nodes:
            raise GraphCompileError(f"Node '{name}' is already registered")
        self._nodes[name] = func
        return self

    def add_edge(self, source: str, target: str) -> GraphBuilder:
        """Add an unconditional edge from ``source`` to ``target``."""
        if source in self._edges or source in self._conditional_edges:
            raise GraphCompileError(f"Node '{source}' already has an outgoing edge")
        self._edges[source] = target
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Router,
        path_map: Optional[Iterable[str]] = None,
    ) -> GraphBuilder:
        """Add a routing function deciding the successors of ``source``.

        Args:
            source: Node whose successors are computed
            router: Pure function of the state returning END, a node name,
                or a list of node names to fan out to
            path_map: Optional whitelist of targets the router may return

        Returns:
            The builder, for chaining
        """
        if source in self._edges or source in self._conditional_edges:
            raise GraphCompileError(f"Node '{source}' already has an outgoing edge")
        targets = set(path_map) if path_map is not None else None
        self._conditional_edges[source] = ConditionalEdge(router=router, path_map=targets)
        return self

    def set_entry_point(self, name: str) -> GraphBuilder:
        """Set the node every ``invoke`` starts from."""
        self._entry_point = name
        return self

    def compile(
        self,
        store: Optional[CheckpointStore] = None,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ) -> CompiledGraph:
        """Validate the definition and return a runnable graph.

        Args:
            store: Checkpoint store (a fresh in-memory store if omitted)
            recursion_limit: Maximum number of steps per run

        Returns:
            CompiledGraph bound to the store

        Raises:
            GraphCompileError: If the definition is inconsistent
        """
        if self._entry_point is None:
            raise GraphCompileError("Entry point is not set")
        if self._entry_point not in self._nodes:
            raise GraphCompileError(f"Entry point '{self._entry_point}' is not a registered node")

        known_targets = set(self._nodes) | {END}
        for source, target in self._edges.items():
            if source not in self._nodes:
                raise GraphCompileError(f"Edge source '{source}' is not a registered node")
            if target not in known_targets:
                raise GraphCompileError(f"Edge target '{target}' is not a registered node")

        for source, edge in self._conditional_edges.items():
            if source not in self._nodes:
                raise GraphCompileError(f"Edge source '{source}' is not a registered node")
            unknown = (edge.path_map or set()) - known_targets
            if unknown:
                raise GraphCompileError(
                    f"Conditional edge from '{source}' names unknown targets: {sorted(unknown)}"
                )

        dangling = [
            name
            for name in self._nodes
            if name not in self._edges and name not in self._conditional_edges
        ]
        if dangling:
            raise GraphCompileError(f"Nodes without an outgoing edge: {sorted(dangling)}")

        if recursion_limit <= 0:
            raise GraphCompileError("Recursion limit must be positive")

        return CompiledGraph(
            nodes=dict(self._nodes),
            edges=dict(self._edges),
            conditional_edges=dict(self._conditional_edges),
            entry_point=self._entry_point,
            store=store if store is not None else CheckpointStore(),
            recursion_limit=recursion_limit,
        )


class CompiledGraph:
    """Runnable graph with checkpointing per conversation thread.

    Runs on the same thread ID are serialized; runs on different threads
    are independent and may interleave freely.
    """

    def __init__(
        self,
        nodes: Dict[str, NodeFunc],
        edges: Dict[str, str],
        conditional_edges: Dict[str, ConditionalEdge],
        entry_point: str,
        store: CheckpointStore,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ):
        self.nodes = nodes
        self.edges = edges
        self.conditional_edges = conditional_edges
        self.entry_point = entry_point
        self.store = store
        self.recursion_limit = recursion_limit
        # Entries live only while a run holds or waits for the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, thread_id: str) -> asyncio.Lock:
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[thread_id] = lock
        return lock

    def get_checkpoint(self, thread_id: str) -> Optional[Checkpoint]:
        """Return the last persisted checkpoint of a thread, if any."""
        return self.store.get(thread_id)

    async def invoke(self, thread_id: str, messages: Sequence[Message]) -> ExecutionResult:
        """Start a new turn on a thread.

        The turn always begins at the entry point; a pending suspension on
        the thread is superseded.

        Args:
            thread_id: Conversation thread identifier
            messages: New messages appended before the first node runs

        Returns:
            Suspended or Completed result

        Raises:
            GraphError: If the run aborts; the checkpoint is left untouched
        """
        async with self._lock_for(thread_id):
            checkpoint = self.store.get(thread_id)
            state = checkpoint.state if checkpoint is not None else ConversationState()
            if checkpoint is not None and checkpoint.is_suspended:
                logger.info(
                    "Thread %s was suspended at %s, starting a new turn",
                    thread_id,
                    checkpoint.pending_nodes,
                )
            state = state.merge(StateUpdate(messages=list(messages)))
            return await self._run(thread_id, state, [self.entry_point])

    async def resume(self, thread_id: str, message: Message) -> ExecutionResult:
        """Continue a suspended thread where it halted.

        Args:
            thread_id: Conversation thread identifier
            message: Message supplying the missing input (e.g. a confirmation)

        Returns:
            Suspended or Completed result

        Raises:
            NothingToResumeError: If the thread has no suspended checkpoint
            GraphError: If the run aborts; the checkpoint is left untouched
        """
        async with self._lock_for(thread_id):
            checkpoint = self.store.get(thread_id)
            if checkpoint is None or not checkpoint.is_suspended:
                raise NothingToResumeError(f"Thread '{thread_id}' is not suspended")

            state = checkpoint.state.merge(StateUpdate(messages=[message]))
            return await self._run(thread_id, state, list(checkpoint.pending_nodes))

    async def update_state(
        self,
        thread_id: str,
        update: Union[StateUpdate, Amendment],
        status: Optional[CheckpointStatus] = None,
    ) -> Optional[Checkpoint]:
        """Merge an out-of-band update into a thread's checkpoint.

        No node runs. Unless ``status`` says otherwise a suspended checkpoint
        stays suspended. ``update`` may be a callable: it receives the current
        checkpoint (or None) while the thread is locked and returns the update
        to merge, or None to leave the thread untouched.

        Args:
            thread_id: Conversation thread identifier
            update: Partial update to merge, or a callable producing it
            status: Optional new status; COMPLETED drops the pending nodes

        Returns:
            The stored checkpoint, or the current one if nothing was merged
        """
        async with self._lock_for(thread_id):
            current = self.store.get(thread_id)
            if callable(update):
                update = update(current)
                if update is None:
                    return current
            checkpoint = current or Checkpoint(thread_id=thread_id)
            checkpoint.state = checkpoint.state.merge(update)
            if status is not None:
                checkpoint.status = status
                if status == CheckpointStatus.COMPLETED:
                    checkpoint.pending_nodes = []
                    checkpoint.reason = None
            stored = self.store.put(checkpoint)
        SUSPENDED_THREADS.set(self.store.count(CheckpointStatus.SUSPENDED))
        return stored

    async def discard(self, thread_id: str) -> bool:
        """Drop a thread's checkpoint.

        Returns:
            True if a checkpoint was deleted
        """
        async with self._lock_for(thread_id):
            deleted = self.store.delete(thread_id)
        SUSPENDED_THREADS.set(self.store.count(CheckpointStatus.SUSPENDED))
        return deleted

    async def _run(
        self,
        thread_id: str,
        state: ConversationState,
        frontier: List[str],
    ) -> ExecutionResult:
        start_time = time.perf_counter()
        outcome = "error"
        try:
            result = await self._execute(thread_id, state, frontier)
            outcome = result.status
            return result
        finally:
            GRAPH_RUNS.labels(outcome=outcome).inc()
            GRAPH_RUN_LATENCY.observe(time.perf_counter() - start_time)

    async def _execute(
        self,
        thread_id: str,
        state: ConversationState,
        frontier: List[str],
    ) -> ExecutionResult:
        steps = 0
        while frontier:
            steps += 1
            if steps > self.recursion_limit:
                raise GraphRecursionError(
                    f"Thread '{thread_id}' exceeded {self.recursion_limit} steps"
                )

            snapshot = state
            step_update = StateUpdate()
            continuing: List[str] = []
            suspended_index: Optional[int] = None
            reason = ""

            for index, name in enumerate(frontier):
                result = await self._run_node(name, snapshot.model_copy(deep=True))
                if result.outcome == NodeOutcome.SUSPEND:
                    suspended_index = index
                    reason = result.reason or "suspended"
                    break
                if result.update is not None:
                    step_update = step_update.combine(result.update)
                if result.outcome == NodeOutcome.CONTINUE:
                    continuing.append(name)

            state = state.merge(step_update)

            successors: List[str] = []
            for name in continuing:
                successors.extend(self._successors(name, state))

            if suspended_index is not None:
                pending = _dedupe([*frontier[suspended_index:], *successors])
                self._save(thread_id, state, CheckpointStatus.SUSPENDED, pending, reason)
                logger.info("Thread %s suspended at %s: %s", thread_id, pending[0], reason)
                return Suspended(
                    thread_id=thread_id, state=state, reason=reason, pending_nodes=pending
                )

            frontier = _dedupe(successors)

        self._save(thread_id, state, CheckpointStatus.COMPLETED, [], None)
        logger.debug("Thread %s completed after %d step(s)", thread_id, steps)
        return Completed(thread_id=thread_id, state=state)

    async def _run_node(self, name: str, state: ConversationState) -> NodeResult:
        func = self.nodes.get(name)
        if func is None:
            raise InvalidRouteError(f"Unknown node '{name}'")

        try:
            returned = func(state)
            if inspect.isawaitable(returned):
                returned = await returned
        except GraphError:
            NODE_EXECUTIONS.labels(node=name, outcome="error").inc()
            raise
        except Exception as e:
            NODE_EXECUTIONS.labels(node=name, outcome="error").inc()
            raise NodeExecutionError(name, str(e), e) from e

        if returned is None:
            result = NodeResult.proceed()
        elif isinstance(returned, StateUpdate):
            result = NodeResult.proceed(returned)
        elif isinstance(returned, NodeResult):
            result = returned
        else:
            raise NodeExecutionError(name, f"unsupported return type {type(returned).__name__}")

        NODE_EXECUTIONS.labels(node=name, outcome=result.outcome.value).inc()
        return result

    def _successors(self, name: str, state: ConversationState) -> List[str]:
        if name in self.edges:
            return [self.edges[name]]

        edge = self.conditional_edges[name]
        try:
            decision = edge.router(state)
        except GraphError:
            raise
        except Exception as e:
            raise NodeExecutionError(name, f"routing failed: {e}", e) from e

        targets = [decision] if isinstance(decision, str) else list(decision)
        for target in targets:
            if target != END and target not in self.nodes:
                raise InvalidRouteError(f"Router of '{name}' returned unknown node '{target}'")
            if edge.path_map is not None and target not in edge.path_map:
                raise InvalidRouteError(
                    f"Router of '{name}' returned '{target}' outside {sorted(edge.path_map)}"
                )
        return targets

    def _save(
        self,
        thread_id: str,
        state: ConversationState,
        status: CheckpointStatus,
        pending: List[str],
        reason: Optional[str],
    ) -> None:
        self.store.put(
            Checkpoint(
                thread_id=thread_id,
                state=state,
                status=status,
                pending_nodes=pending,
                reason=reason,
            )
        )
        SUSPENDED_THREADS.set(self.store.count(CheckpointStatus.SUSPENDED))
