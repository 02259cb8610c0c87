"""Tests for the autonomous orchestrator control loop."""

from __future__ import annotations

import asyncio

import pytest

from autopilot.actions import ActionExecutor
from autopilot.config import OrchestratorConfig
from autopilot.models import Action, ActionType, Decision
from autopilot.orchestrator import AutonomousOrchestrator
from integrations.codegen_client import CodegenAPIError

from fakes import FakeCodegenClient, make_queue


def _decision(index: int, *actions: Action) -> Decision:
    return Decision(
        id=f"decision-{index}",
        trigger="optimization_opportunities",
        analysis="synthetic",
        decision="auto_optimize_performance",
        confidence=0.75,
        reasoning="synthetic",
        actions=list(actions),
    )


def test_start_twice_keeps_a_single_timer() -> None:
    async def scenario() -> AutonomousOrchestrator:
        orch = AutonomousOrchestrator(FakeCodegenClient(), OrchestratorConfig(check_interval=60))
        orch.start()
        timer = orch._timer_task
        orch.start()

        assert orch._timer_task is timer
        assert orch.is_running is True

        await orch.wait_idle()
        orch.stop()
        orch.stop()
        await asyncio.sleep(0)

        assert timer.cancelled()
        assert orch.is_running is False
        return orch

    orch = asyncio.run(scenario())

    # Only the immediate cycle ran; the timer never reached its first tick
    assert orch.cycle_count == 1


def test_start_requires_running_event_loop() -> None:
    orch = AutonomousOrchestrator(FakeCodegenClient())
    with pytest.raises(RuntimeError):
        orch.start()
    assert orch.is_running is False


def test_stop_without_start_is_noop() -> None:
    orch = AutonomousOrchestrator(FakeCodegenClient())
    orch.stop()
    orch.stop()
    assert orch.get_status()["is_running"] is False


def test_timer_keeps_firing_cycles() -> None:
    async def scenario() -> AutonomousOrchestrator:
        orch = AutonomousOrchestrator(FakeCodegenClient(), OrchestratorConfig(check_interval=0.01))
        orch.start()
        await asyncio.sleep(0.1)
        orch.stop()
        await orch.wait_idle()
        return orch

    orch = asyncio.run(scenario())

    assert orch.cycle_count >= 2
    assert orch.get_status()["is_running"] is False


def test_history_is_bounded_to_most_recent_hundred() -> None:
    orch = AutonomousOrchestrator(FakeCodegenClient())
    decisions = [_decision(i) for i in range(105)]

    failures = asyncio.run(orch.execute_decisions(decisions))

    status = orch.get_status()
    assert failures == []
    assert status["decision_count"] == 100
    assert status["last_decision"]["id"] == "decision-104"
    assert [d.id for d in orch.get_decisions()] == [f"decision-{i}" for i in range(5, 105)]
    assert [d.id for d in orch.get_decisions(limit=2)] == ["decision-103", "decision-104"]


def test_cycle_records_decisions_and_metrics() -> None:
    client = FakeCodegenClient(queue=make_queue(failed=4, queued=11))
    orch = AutonomousOrchestrator(client)

    asyncio.run(orch.run_cycle())

    status = orch.get_status()
    assert status["decision_count"] == 2
    assert [d.trigger for d in orch.get_decisions()] == [
        "critical_issues_detected",
        "optimization_opportunities",
    ]
    metrics = {m["name"]: m for m in status["metrics"]}
    assert set(metrics) == {"queue.failed", "queue.pending", "queue.running", "system.load"}
    assert metrics["queue.failed"]["value"] == 4
    assert metrics["queue.failed"]["status"] == "warning"
    assert metrics["queue.pending"]["value"] == 11
    assert metrics["queue.pending"]["status"] == "warning"
    assert status["consecutive_failures"] == 0
    assert status["last_error"] is None
    assert status["cycle_count"] == 1


def test_partial_gather_failure_still_completes_cycle() -> None:
    client = FakeCodegenClient(
        queue=make_queue(running=1, queued=1),
        failures={"get_dashboard_stats": CodegenAPIError(code="HTTP_500", message="stats exploded")},
    )
    orch = AutonomousOrchestrator(client)

    snapshot = asyncio.run(orch.gather_intelligence())
    assert snapshot.stats is None
    assert set(snapshot.errors) == {"stats"}
    assert len(snapshot.queue) == 2

    asyncio.run(orch.run_cycle())

    status = orch.get_status()
    metrics = {m["name"]: m["value"] for m in status["metrics"]}
    assert metrics["queue.running"] == 1
    assert metrics["system.load"] == pytest.approx(0.25)
    assert [d.trigger for d in orch.get_decisions()] == ["optimization_opportunities"]
    assert status["consecutive_failures"] == 0


def test_failed_queue_fetch_defaults_to_empty_queue() -> None:
    client = FakeCodegenClient(failures={"get_queue": CodegenAPIError(code="TIMEOUT", message="Request timeout")})
    orch = AutonomousOrchestrator(client, OrchestratorConfig(auto_optimize=False))

    asyncio.run(orch.run_cycle())

    metrics = {m["name"]: m["value"] for m in orch.get_status()["metrics"]}
    assert metrics["queue.failed"] == 0
    assert metrics["system.load"] == 0
    assert orch.get_status()["decision_count"] == 0


def test_action_failure_drops_only_that_decision(caplog) -> None:
    client = FakeCodegenClient(queue=make_queue(failed=4))
    executor = ActionExecutor(client=client)

    async def broken(action: Action, decision: Decision) -> None:
        raise RuntimeError("retry backend unavailable")

    executor.register_handler(ActionType.RETRY_FAILED_TASKS, broken)
    orch = AutonomousOrchestrator(client, executor=executor)

    with caplog.at_level("INFO"):
        asyncio.run(orch.run_cycle())

    status = orch.get_status()
    assert [d.trigger for d in orch.get_decisions()] == ["optimization_opportunities"]
    assert status["consecutive_failures"] == 1
    assert status["last_error"]["type"] == "DecisionExecutionError"
    assert "retry backend unavailable" in status["last_error"]["message"]
    assert "Learning from recent outcomes" in caplog.text


def test_failing_action_aborts_rest_of_its_decision() -> None:
    executed: list[str] = []
    executor = ActionExecutor()

    async def record(action: Action, decision: Decision) -> None:
        executed.append(action.type)

    async def broken(action: Action, decision: Decision) -> None:
        raise RuntimeError("boom")

    executor.register_handler("first", record)
    executor.register_handler("second", broken)
    executor.register_handler("third", record)
    orch = AutonomousOrchestrator(FakeCodegenClient(), executor=executor)

    def act(action_type: str) -> Action:
        return Action(type=action_type, priority="low", description="", estimated_duration=0)

    failing = _decision(1, act("first"), act("second"), act("third"))
    following = _decision(2, act("third"))

    failures = asyncio.run(orch.execute_decisions([failing, following]))

    assert executed == ["first", "third"]
    assert [d.id for d, _ in failures] == ["decision-1"]
    assert [d.id for d in orch.get_decisions()] == ["decision-2"]


def test_network_errors_route_to_auto_recovery(caplog) -> None:
    client = FakeCodegenClient(queue=make_queue(failed=4))
    executor = ActionExecutor(client=client)

    async def unreachable(action: Action, decision: Decision) -> None:
        raise CodegenAPIError(code="NETWORK_ERROR", message="network error: connection refused")

    executor.register_handler(ActionType.RETRY_FAILED_TASKS, unreachable)
    orch = AutonomousOrchestrator(client, OrchestratorConfig(auto_optimize=False), executor=executor)

    with caplog.at_level("INFO"):
        asyncio.run(orch.run_cycle())

    assert "Attempting auto-recovery" in caplog.text


def test_unexpected_errors_are_swallowed_and_counted() -> None:
    # A malformed queue entry breaks analysis
    client = FakeCodegenClient(queue=[None])
    orch = AutonomousOrchestrator(client)

    asyncio.run(orch.run_cycle())
    asyncio.run(orch.run_cycle())

    status = orch.get_status()
    assert status["consecutive_failures"] == 2
    assert status["last_error"]["type"] == "AttributeError"
    assert status["decision_count"] == 0

    client.queue = []
    asyncio.run(orch.run_cycle())
    assert orch.get_status()["consecutive_failures"] == 0


def test_overlapping_cycle_is_skipped() -> None:
    class SlowClient(FakeCodegenClient):
        def __init__(self) -> None:
            super().__init__()
            self.release: asyncio.Event | None = None

        async def get_queue(self):
            await self.release.wait()
            return await super().get_queue()

    async def scenario() -> AutonomousOrchestrator:
        client = SlowClient()
        client.release = asyncio.Event()
        orch = AutonomousOrchestrator(client)

        first = asyncio.create_task(orch.run_cycle())
        await asyncio.sleep(0)
        await orch.run_cycle()

        assert orch.get_status()["cycle_in_progress"] is True
        client.release.set()
        await first
        return orch

    orch = asyncio.run(scenario())

    status = orch.get_status()
    assert status["skipped_ticks"] == 1
    assert status["cycle_count"] == 1
    assert status["cycle_in_progress"] is False


def test_get_status_does_not_mutate_state() -> None:
    orch = AutonomousOrchestrator(FakeCodegenClient(queue=make_queue(failed=4)))
    asyncio.run(orch.run_cycle())

    first = orch.get_status()
    second = orch.get_status()

    assert first == second
    assert len(orch.get_decisions()) == first["decision_count"]


def test_reconfigure_only_while_stopped() -> None:
    orch = AutonomousOrchestrator(FakeCodegenClient())
    orch.reconfigure(OrchestratorConfig(auto_optimize=False, history_limit=10, live_actions=True))

    assert orch.config.auto_optimize is False
    assert orch.executor.live is True
    assert orch._history.maxlen == 10

    async def scenario() -> None:
        orch.start()
        try:
            with pytest.raises(RuntimeError):
                orch.reconfigure(OrchestratorConfig())
        finally:
            orch.stop()
            await orch.wait_idle()

    asyncio.run(scenario())


def test_live_retry_submits_each_failed_task_once_across_cycles() -> None:
    client = FakeCodegenClient(queue=make_queue(failed=4))
    config = OrchestratorConfig(auto_optimize=False, live_actions=True, retry_backoff=0)
    orch = AutonomousOrchestrator(client, config)

    async def scenario() -> None:
        for _ in range(3):
            await orch.run_cycle()

    asyncio.run(scenario())

    retried = [t["metadata"]["retryOf"] for t in client.added]
    assert retried == ["failed-0", "failed-1", "failed-2", "failed-3"]
    assert client.queue == []
    assert orch.get_status()["decision_count"] == 1
    assert orch.get_status()["consecutive_failures"] == 0
