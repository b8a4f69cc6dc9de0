"""Tests for the graph executor."""

import asyncio
import gc

import pytest
from broker_core.engine import (
    END,
    Completed,
    ExecutionResult,
    GraphBuilder,
    GraphCompileError,
    GraphRecursionError,
    InvalidRouteError,
    NodeExecutionError,
    NodeResult,
    NothingToResumeError,
    Suspended,
)
from broker_runtime import (
    CheckpointStatus,
    CheckpointStore,
    ConversationState,
    Message,
    MessageRole,
    RetentionPolicy,
    StateUpdate,
    StockPurchase,
)


def say(text):
    """Node that appends an assistant message."""

    async def node(state: ConversationState) -> StateUpdate:
        return StateUpdate(messages=[Message.assistant(text)])

    return node


async def noop(state: ConversationState) -> None:
    return None


async def gate(state: ConversationState) -> NodeResult:
    """Suspend until the newest message is a tool result."""
    if state.last_message is None or state.last_message.role != MessageRole.TOOL:
        return NodeResult.suspend("confirmation required")
    return NodeResult.proceed()


@pytest.fixture
def store():
    """Create a fresh checkpoint store."""
    return CheckpointStore()


class TestGraphCompile:
    """Tests for graph definition validation."""

    def test_missing_entry_point(self):
        """Test that an entry point is required."""
        builder = GraphBuilder().add_node("a", noop).add_edge("a", END)

        with pytest.raises(GraphCompileError) as exc_info:
            builder.compile()

        assert "Entry point is not set" in str(exc_info.value)

    def test_unknown_entry_point(self):
        """Test that the entry point must be registered."""
        builder = GraphBuilder().add_node("a", noop).add_edge("a", END).set_entry_point("b")

        with pytest.raises(GraphCompileError):
            builder.compile()

    def test_unknown_edge_target(self):
        """Test that static edges must point to known nodes."""
        builder = GraphBuilder().add_node("a", noop).add_edge("a", "b").set_entry_point("a")

        with pytest.raises(GraphCompileError) as exc_info:
            builder.compile()

        assert "'b'" in str(exc_info.value)

    def test_unknown_path_map_target(self):
        """Test that declared routing targets must exist."""
        builder = (
            GraphBuilder()
            .add_node("a", noop)
            .add_conditional_edges("a", lambda s: END, ["missing", END])
            .set_entry_point("a")
        )

        with pytest.raises(GraphCompileError):
            builder.compile()

    def test_node_without_outgoing_edge(self):
        """Test that every node needs an outgoing edge."""
        builder = (
            GraphBuilder()
            .add_node("a", noop)
            .add_node("b", noop)
            .add_edge("a", END)
            .set_entry_point("a")
        )

        with pytest.raises(GraphCompileError) as exc_info:
            builder.compile()

        assert "without an outgoing edge" in str(exc_info.value)

    def test_duplicate_node(self):
        """Test that node names are unique."""
        builder = GraphBuilder().add_node("a", noop)

        with pytest.raises(GraphCompileError):
            builder.add_node("a", noop)

    def test_end_is_reserved(self):
        """Test that the terminal marker cannot be a node."""
        with pytest.raises(GraphCompileError):
            GraphBuilder().add_node(END, noop)

    def test_second_outgoing_edge(self):
        """Test that a node has a single edge definition."""
        builder = GraphBuilder().add_node("a", noop).add_edge("a", END)

        with pytest.raises(GraphCompileError):
            builder.add_conditional_edges("a", lambda s: END)

    def test_recursion_limit_must_be_positive(self):
        """Test the step limit bound."""
        builder = GraphBuilder().add_node("a", noop).add_edge("a", END).set_entry_point("a")

        with pytest.raises(GraphCompileError):
            builder.compile(recursion_limit=0)


class TestInvoke:
    """Tests for straight-line execution."""

    @pytest.mark.asyncio
    async def test_linear_run_completes(self, store):
        """Test a two-node run to completion."""
        graph = (
            GraphBuilder()
            .add_node("first", say("one"))
            .add_node("second", say("two"))
            .add_edge("first", "second")
            .add_edge("second", END)
            .set_entry_point("first")
            .compile(store)
        )

        result = await graph.invoke("t1", [Message.user("go")])

        assert isinstance(result, Completed)
        assert result.status == "completed"
        assert [m.content for m in result.messages] == ["go", "one", "two"]

        checkpoint = store.get("t1")
        assert checkpoint.status == CheckpointStatus.COMPLETED
        assert checkpoint.pending_nodes == []
        assert len(checkpoint.state.messages) == 3

    @pytest.mark.asyncio
    async def test_history_carries_over(self, store):
        """Test that a new turn starts from the last checkpoint."""
        graph = (
            GraphBuilder()
            .add_node("reply", say("ok"))
            .add_edge("reply", END)
            .set_entry_point("reply")
            .compile(store)
        )

        await graph.invoke("t1", [Message.user("first")])
        result = await graph.invoke("t1", [Message.user("second")])

        assert [m.content for m in result.messages] == ["first", "ok", "second", "ok"]

    @pytest.mark.asyncio
    async def test_none_and_plain_update_proceed(self, store):
        """Test that None and a bare StateUpdate continue along the edge."""
        graph = (
            GraphBuilder()
            .add_node("quiet", noop)
            .add_node("reply", say("done"))
            .add_edge("quiet", "reply")
            .add_edge("reply", END)
            .set_entry_point("quiet")
            .compile(store)
        )

        result = await graph.invoke("t1", [])

        assert [m.content for m in result.messages] == ["done"]

    @pytest.mark.asyncio
    async def test_end_result_stops_branch(self, store):
        """Test that NodeResult.end ignores the outgoing edge."""

        async def stop(state):
            return NodeResult.end(StateUpdate(messages=[Message.assistant("stopped")]))

        graph = (
            GraphBuilder()
            .add_node("stop", stop)
            .add_node("never", say("unreachable"))
            .add_edge("stop", "never")
            .add_edge("never", END)
            .set_entry_point("stop")
            .compile(store)
        )

        result = await graph.invoke("t1", [])

        assert [m.content for m in result.messages] == ["stopped"]

    @pytest.mark.asyncio
    async def test_node_mutation_does_not_leak(self, store):
        """Test that nodes receive a private copy of the state."""

        async def vandal(state):
            state.messages.clear()
            state.staged_purchase = StockPurchase(ticker="EVIL")
            return None

        graph = (
            GraphBuilder()
            .add_node("vandal", vandal)
            .add_edge("vandal", END)
            .set_entry_point("vandal")
            .compile(store)
        )

        result = await graph.invoke("t1", [Message.user("keep me")])

        assert [m.content for m in result.messages] == ["keep me"]
        assert result.state.staged_purchase is None


class TestSuspendResume:
    """Tests for suspension and resumption."""

    @pytest.fixture
    def graph(self, store):
        """Create a graph with a confirmation gate."""
        return (
            GraphBuilder()
            .add_node("stage", say("staged"))
            .add_node("gate", gate)
            .add_node("finish", say("finished"))
            .add_edge("stage", "gate")
            .add_edge("gate", "finish")
            .add_edge("finish", END)
            .set_entry_point("stage")
            .compile(store)
        )

    @pytest.mark.asyncio
    async def test_suspends_at_gate(self, graph, store):
        """Test that the run halts and persists the pending node."""
        result = await graph.invoke("t1", [Message.user("buy")])

        assert isinstance(result, Suspended)
        assert result.status == "suspended"
        assert result.reason == "confirmation required"
        assert result.pending_nodes == ["gate"]

        checkpoint = store.get("t1")
        assert checkpoint.is_suspended
        assert checkpoint.pending_nodes == ["gate"]
        assert [m.content for m in checkpoint.state.messages] == ["buy", "staged"]

    @pytest.mark.asyncio
    async def test_resume_continues_at_gate(self, graph, store):
        """Test that resume re-runs the suspended node with the new input."""
        await graph.invoke("t1", [Message.user("buy")])

        result = await graph.resume("t1", Message.tool('{"approve": true}', "call_1"))

        assert isinstance(result, Completed)
        assert [m.content for m in result.messages][-1] == "finished"
        assert [m.content for m in result.messages].count("staged") == 1
        assert store.get("t1").status == CheckpointStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_resume_without_missing_input_suspends_again(self, graph):
        """Test that a resume lacking the input suspends at the same node."""
        await graph.invoke("t1", [Message.user("buy")])

        result = await graph.resume("t1", Message.user("still thinking"))

        assert isinstance(result, Suspended)
        assert result.pending_nodes == ["gate"]

    @pytest.mark.asyncio
    async def test_resume_completed_thread_fails(self, graph):
        """Test that only suspended threads can be resumed."""
        await graph.invoke("t1", [Message.user("buy")])
        await graph.resume("t1", Message.tool("{}", "call_1"))

        with pytest.raises(NothingToResumeError):
            await graph.resume("t1", Message.tool("{}", "call_1"))

    @pytest.mark.asyncio
    async def test_resume_unknown_thread_fails(self, graph):
        """Test resuming a thread that never ran."""
        with pytest.raises(NothingToResumeError):
            await graph.resume("nobody", Message.tool("{}", "call_1"))

    @pytest.mark.asyncio
    async def test_invoke_supersedes_suspension(self, graph):
        """Test that a new turn restarts at the entry point."""
        await graph.invoke("t1", [Message.user("buy")])

        result = await graph.invoke("t1", [Message.user("buy again")])

        assert isinstance(result, Suspended)
        assert [m.content for m in result.messages] == ["buy", "staged", "buy again", "staged"]

    @pytest.mark.asyncio
    async def test_update_state_keeps_suspension(self, graph, store):
        """Test out-of-band updates on a suspended thread."""
        await graph.invoke("t1", [Message.user("buy")])

        checkpoint = await graph.update_state(
            "t1", StateUpdate(staged_purchase=StockPurchase(ticker="AAPL"))
        )

        assert checkpoint.is_suspended
        assert store.get("t1").state.staged_purchase.ticker == "AAPL"

    @pytest.mark.asyncio
    async def test_update_state_can_complete(self, graph, store):
        """Test closing a suspension without running nodes."""
        await graph.invoke("t1", [Message.user("buy")])

        checkpoint = await graph.update_state(
            "t1", StateUpdate(), status=CheckpointStatus.COMPLETED
        )

        assert checkpoint.status == CheckpointStatus.COMPLETED
        assert checkpoint.pending_nodes == []
        assert checkpoint.reason is None

    @pytest.mark.asyncio
    async def test_update_state_callable_reads_current_checkpoint(self, graph, store):
        """Test a computed update sees the checkpoint it amends."""
        await graph.invoke("t1", [Message.user("buy")])
        seen = []

        def amend(checkpoint):
            seen.append(checkpoint.pending_nodes)
            return StateUpdate(messages=[Message.user("noted")])

        checkpoint = await graph.update_state("t1", amend, status=CheckpointStatus.COMPLETED)

        assert seen == [["gate"]]
        assert checkpoint.status == CheckpointStatus.COMPLETED
        assert store.get("t1").state.messages[-1].content == "noted"

    @pytest.mark.asyncio
    async def test_update_state_callable_can_decline(self, graph, store):
        """Test that returning None leaves the thread untouched."""
        await graph.invoke("t1", [Message.user("buy")])

        checkpoint = await graph.update_state(
            "t1", lambda checkpoint: None, status=CheckpointStatus.COMPLETED
        )

        assert checkpoint.is_suspended
        assert store.get("t1").is_suspended
        assert len(store.get("t1").state.messages) == 2

    @pytest.mark.asyncio
    async def test_concurrent_amendments_apply_once(self, graph, store):
        """Test check-and-write of competing amendments is atomic."""
        await graph.invoke("t1", [Message.user("buy")])

        def close_once(checkpoint):
            if not checkpoint.is_suspended:
                return None
            return StateUpdate(messages=[Message.user("closed")])

        await asyncio.gather(
            graph.update_state("t1", close_once, status=CheckpointStatus.COMPLETED),
            graph.update_state("t1", close_once, status=CheckpointStatus.COMPLETED),
        )

        contents = [m.content for m in store.get("t1").state.messages]
        assert contents.count("closed") == 1

    @pytest.mark.asyncio
    async def test_discard(self, graph, store):
        """Test dropping a thread."""
        await graph.invoke("t1", [Message.user("buy")])

        assert await graph.discard("t1") is True
        assert graph.get_checkpoint("t1") is None
        assert await graph.discard("t1") is False


class TestFanOut:
    """Tests for multi-target routing."""

    @pytest.mark.asyncio
    async def test_branches_see_same_snapshot(self, store):
        """Test that branches run against one snapshot and merge in order."""
        seen = []

        def counting(text):
            async def node(state):
                seen.append(len(state.messages))
                return StateUpdate(messages=[Message.assistant(text)])

            return node

        graph = (
            GraphBuilder()
            .add_node("start", noop)
            .add_node("left", counting("left"))
            .add_node("right", counting("right"))
            .add_conditional_edges("start", lambda s: ["left", "right"], ["left", "right"])
            .add_edge("left", END)
            .add_edge("right", END)
            .set_entry_point("start")
            .compile(store)
        )

        result = await graph.invoke("t1", [Message.user("go")])

        assert seen == [1, 1]
        assert [m.content for m in result.messages] == ["go", "left", "right"]

    @pytest.mark.asyncio
    async def test_shared_successor_runs_once(self, store):
        """Test that branches rejoining at one node trigger it once."""
        calls = []

        async def join(state):
            calls.append(len(state.messages))
            return None

        graph = (
            GraphBuilder()
            .add_node("start", noop)
            .add_node("left", say("left"))
            .add_node("right", say("right"))
            .add_node("join", join)
            .add_conditional_edges("start", lambda s: ["left", "right"])
            .add_edge("left", "join")
            .add_edge("right", "join")
            .add_edge("join", END)
            .set_entry_point("start")
            .compile(store)
        )

        await graph.invoke("t1", [])

        assert calls == [2]

    @pytest.mark.asyncio
    async def test_suspend_defers_later_branches(self, store):
        """Test that a suspending branch stops the rest of its step."""
        ran = []

        async def later(state):
            ran.append(state.last_message.role)
            return StateUpdate(messages=[Message.assistant("later")])

        graph = (
            GraphBuilder()
            .add_node("start", noop)
            .add_node("gate", gate)
            .add_node("later", later)
            .add_conditional_edges("start", lambda s: ["gate", "later"])
            .add_edge("gate", END)
            .add_edge("later", END)
            .set_entry_point("start")
            .compile(store)
        )

        result = await graph.invoke("t1", [Message.user("go")])

        assert isinstance(result, Suspended)
        assert result.pending_nodes == ["gate", "later"]
        assert ran == []

        resumed = await graph.resume("t1", Message.tool("{}", "call_1"))

        assert isinstance(resumed, Completed)
        assert ran == [MessageRole.TOOL]
        assert resumed.messages[-1].content == "later"

    @pytest.mark.asyncio
    async def test_earlier_branch_updates_kept_on_suspend(self, store):
        """Test that updates before the suspending branch are persisted."""
        graph = (
            GraphBuilder()
            .add_node("start", noop)
            .add_node("first", say("first"))
            .add_node("gate", gate)
            .add_node("after", say("after"))
            .add_conditional_edges("start", lambda s: ["first", "gate"])
            .add_edge("first", "after")
            .add_edge("gate", END)
            .add_edge("after", END)
            .set_entry_point("start")
            .compile(store)
        )

        result = await graph.invoke("t1", [Message.user("go")])

        assert [m.content for m in result.messages] == ["go", "first"]
        assert result.pending_nodes == ["gate", "after"]


class TestErrors:
    """Tests for aborted runs."""

    @pytest.mark.asyncio
    async def test_node_failure_keeps_last_checkpoint(self, store):
        """Test that a failing node leaves the previous checkpoint intact."""
        fail = {"on": False}

        async def flaky(state):
            if fail["on"]:
                raise ValueError("boom")
            return StateUpdate(messages=[Message.assistant("fine")])

        graph = (
            GraphBuilder()
            .add_node("flaky", flaky)
            .add_edge("flaky", END)
            .set_entry_point("flaky")
            .compile(store)
        )
        await graph.invoke("t1", [Message.user("one")])
        fail["on"] = True

        with pytest.raises(NodeExecutionError) as exc_info:
            await graph.invoke("t1", [Message.user("two")])

        assert exc_info.value.node == "flaky"
        assert isinstance(exc_info.value.cause, ValueError)
        assert [m.content for m in store.get("t1").state.messages] == ["one", "fine"]

    @pytest.mark.asyncio
    async def test_router_returning_unknown_node(self, store):
        """Test that routing to an unregistered node fails."""
        graph = (
            GraphBuilder()
            .add_node("a", noop)
            .add_conditional_edges("a", lambda s: "ghost")
            .set_entry_point("a")
            .compile(store)
        )

        with pytest.raises(InvalidRouteError):
            await graph.invoke("t1", [])

    @pytest.mark.asyncio
    async def test_router_outside_path_map(self, store):
        """Test that routers are held to their declared targets."""
        graph = (
            GraphBuilder()
            .add_node("a", noop)
            .add_node("b", noop)
            .add_conditional_edges("a", lambda s: "b", [END])
            .add_edge("b", END)
            .set_entry_point("a")
            .compile(store)
        )

        with pytest.raises(InvalidRouteError):
            await graph.invoke("t1", [])

    @pytest.mark.asyncio
    async def test_recursion_limit(self, store):
        """Test that cycles are cut at the step limit."""
        graph = (
            GraphBuilder()
            .add_node("loop", say("again"))
            .add_edge("loop", "loop")
            .set_entry_point("loop")
            .compile(store, recursion_limit=3)
        )

        with pytest.raises(GraphRecursionError):
            await graph.invoke("t1", [])

        assert store.get("t1") is None


class TestConcurrency:
    """Tests for per-thread serialization."""

    @pytest.mark.asyncio
    async def test_same_thread_runs_are_serialized(self, store):
        """Test that concurrent turns on one thread do not lose messages."""

        async def slow(state):
            await asyncio.sleep(0.01)
            return StateUpdate(messages=[Message.assistant(f"seen {len(state.messages)}")])

        graph = (
            GraphBuilder()
            .add_node("slow", slow)
            .add_edge("slow", END)
            .set_entry_point("slow")
            .compile(store)
        )

        await asyncio.gather(
            graph.invoke("t1", [Message.user("a")]),
            graph.invoke("t1", [Message.user("b")]),
        )

        assert len(store.get("t1").state.messages) == 4

    @pytest.mark.asyncio
    async def test_threads_are_independent(self, store):
        """Test that different threads keep separate histories."""
        graph = (
            GraphBuilder()
            .add_node("reply", say("ok"))
            .add_edge("reply", END)
            .set_entry_point("reply")
            .compile(store)
        )

        await asyncio.gather(
            graph.invoke("t1", [Message.user("a")]),
            graph.invoke("t2", [Message.user("b")]),
        )

        assert [m.content for m in store.get("t1").state.messages] == ["a", "ok"]
        assert [m.content for m in store.get("t2").state.messages] == ["b", "ok"]

    @pytest.mark.asyncio
    async def test_idle_locks_are_released(self):
        """Test that finished and evicted threads keep no lock."""
        store = CheckpointStore(RetentionPolicy(max_threads=1))
        graph = (
            GraphBuilder()
            .add_node("reply", say("ok"))
            .add_edge("reply", END)
            .set_entry_point("reply")
            .compile(store)
        )

        await graph.invoke("t1", [Message.user("a")])
        await graph.invoke("t2", [Message.user("b")])
        gc.collect()

        assert store.get("t1") is None
        assert len(graph._locks) == 0


class TestExecutionResult:
    """Tests for execution result types."""

    def test_base_result_is_abstract(self):
        """Test that only concrete outcomes can be built."""
        with pytest.raises(TypeError):
            ExecutionResult("t1", ConversationState())

    def test_concrete_statuses(self):
        """Test the wire names of both outcomes."""
        state = ConversationState()

        assert Suspended("t1", state, reason="waiting").status == "suspended"
        assert Completed("t1", state).status == "completed"
