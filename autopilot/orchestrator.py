"""
Autonomous Orchestrator
=======================

Polling control loop over the Codegen agent service. Every cycle:

1. Gather    - fetch repositories, queue, stats and health in parallel
2. Analyze   - derive issues, opportunities and load; refresh metrics
3. Decide    - synthesize decisions from the analysis
4. Execute   - dispatch each decision's actions in order
5. Learn     - extension point, currently log-only

Usage:
    orchestrator = AutonomousOrchestrator(client, OrchestratorConfig())
    orchestrator.start()      # inside a running event loop
    ...
    orchestrator.stop()
"""

import asyncio
import logging
from collections import deque
from typing import Optional, List, Dict, Any, Deque, Set, Tuple

from .actions import ActionExecutor
from .config import OrchestratorConfig
from .decisions import analyze, make_decisions
from .metrics import MetricsTracker
from .models import Analysis, Decision, IntelligenceSnapshot, utc_now_iso

logger = logging.getLogger(__name__)

RECOVERABLE_ERROR_MARKERS = ('network', 'timeout')


class DecisionExecutionError(Exception):
    """One or more decisions failed while executing their actions."""

    def __init__(self, failures: List[Tuple[Decision, BaseException]]):
        self.failures = failures
        summary = '; '.join(f"{d.id} ({d.trigger}): {e}" for d, e in failures)
        super().__init__(f"{len(failures)} decision(s) failed: {summary}")


class AutonomousOrchestrator:
    """
    Observes the agent service, decides on remediation and keeps a
    bounded audit trail.

    The API client is injected; it must provide the async methods
    get_repositories, get_queue, get_dashboard_stats and get_system_health.
    """

    def __init__(
        self,
        client,
        config: Optional[OrchestratorConfig] = None,
        executor: Optional[ActionExecutor] = None
    ):
        self.client = client
        self.config = config or OrchestratorConfig()
        self._custom_executor = executor is not None
        self.executor = executor or self._build_executor()
        self.metrics = MetricsTracker()
        self._history: Deque[Decision] = deque(maxlen=self.config.history_limit)

        self.is_running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()
        self._cycle_in_progress = False

        self.cycle_count = 0
        self.skipped_ticks = 0
        self.consecutive_failures = 0
        self.last_error: Optional[Dict[str, Any]] = None
        self.last_cycle_at: Optional[str] = None

    def _build_executor(self) -> ActionExecutor:
        return ActionExecutor(
            client=self.client,
            live=self.config.live_actions,
            retry_backoff=self.config.retry_backoff,
        )

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """
        Start the loop: schedule the periodic timer and run one cycle now.

        Must be called from inside a running event loop.
        """
        if self.is_running:
            logger.warning("Autonomous orchestrator is already running")
            return

        loop = asyncio.get_running_loop()
        self.is_running = True
        logger.info(
            f"Starting Autonomous Orchestrator (interval {self.config.check_interval}s, "
            f"level {self.config.intelligence_level})"
        )

        self._timer_task = loop.create_task(self._timer_loop())
        self._spawn_cycle()

    def stop(self) -> None:
        """Stop future ticks. Cycles already in flight run to completion."""
        if not self.is_running:
            return

        self.is_running = False
        if self._timer_task:
            self._timer_task.cancel()
            self._timer_task = None

        logger.info("Stopped Autonomous Orchestrator")

    def reconfigure(self, config: OrchestratorConfig) -> None:
        """Replace the configuration. Only allowed while stopped."""
        if self.is_running:
            raise RuntimeError("Cannot reconfigure a running orchestrator; stop it first")

        self.config = config
        if not self._custom_executor:
            self.executor = self._build_executor()
        if self._history.maxlen != config.history_limit:
            self._history = deque(self._history, maxlen=config.history_limit)
        logger.info(f"Orchestrator reconfigured: {config.to_dict()}")

    async def _timer_loop(self) -> None:
        while self.is_running:
            await asyncio.sleep(self.config.check_interval)
            if not self.is_running:
                break
            self._spawn_cycle()

    def _spawn_cycle(self) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.run_cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every cycle currently in flight to finish."""
        while True:
            pending = [t for t in self._cycle_tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending)

    # ==================== Status ====================

    def get_status(self) -> Dict[str, Any]:
        """Current status for the dashboard. Does not mutate any state."""
        last_decision = self._history[-1] if self._history else None
        return {
            'is_running': self.is_running,
            'last_decision': last_decision.to_dict() if last_decision else None,
            'decision_count': len(self._history),
            'metrics': [m.to_dict() for m in self.metrics.snapshot()],
            'cycle_count': self.cycle_count,
            'cycle_in_progress': self._cycle_in_progress,
            'skipped_ticks': self.skipped_ticks,
            'consecutive_failures': self.consecutive_failures,
            'last_error': self.last_error,
            'last_cycle_at': self.last_cycle_at,
        }

    def get_decisions(self, limit: Optional[int] = None) -> List[Decision]:
        """Decision history, oldest first, optionally only the last ``limit``."""
        history = list(self._history)
        if limit is not None:
            history = history[-limit:] if limit > 0 else []
        return history

    # ==================== Cycle ====================

    async def run_cycle(self) -> None:
        """Run one full cycle. Never raises; failures are logged and recorded."""
        if self._cycle_in_progress:
            self.skipped_ticks += 1
            logger.warning("Previous orchestration cycle still running, skipping tick")
            return

        self._cycle_in_progress = True
        self.cycle_count += 1
        try:
            snapshot = await self.gather_intelligence()
            analysis = self.analyze(snapshot)
            decisions = self.make_decisions(analysis)
            failures = await self.execute_decisions(decisions)
            await self.learn_from_outcomes(decisions)

            if failures:
                raise DecisionExecutionError(failures)

            self.consecutive_failures = 0
        except Exception as e:
            self.consecutive_failures += 1
            self.last_error = {
                'type': type(e).__name__,
                'message': str(e),
                'timestamp': utc_now_iso(),
            }
            logger.exception(f"Orchestration error: {e}")
            await self.handle_error(e)
        finally:
            self.last_cycle_at = utc_now_iso()
            self._cycle_in_progress = False

    async def gather_intelligence(self) -> IntelligenceSnapshot:
        """Fetch the four resources in parallel, substituting defaults for failures."""
        names = ('repositories', 'queue', 'stats', 'system_health')
        results = await asyncio.gather(
            self.client.get_repositories(),
            self.client.get_queue(),
            self.client.get_dashboard_stats(),
            self.client.get_system_health(),
            return_exceptions=True,
        )

        values: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.warning(f"Failed to fetch {name}: {result}")
                errors[name] = str(result)
                values[name] = None
            else:
                values[name] = result

        return IntelligenceSnapshot(
            repositories=values['repositories'] or [],
            queue=values['queue'] or [],
            stats=values['stats'],
            system_health=values['system_health'],
            errors=errors,
        )

    def analyze(self, snapshot: IntelligenceSnapshot) -> Analysis:
        """Analyze a snapshot and refresh the metric table from it."""
        analysis = analyze(snapshot, self.config.max_concurrent_tasks)
        self.metrics.update(analysis.metric_values())

        for issue in analysis.critical_issues:
            logger.warning(f"Critical issue: {issue.message}")
        return analysis

    def make_decisions(self, analysis: Analysis) -> List[Decision]:
        return make_decisions(analysis, self.config)

    async def execute_decisions(self, decisions: List[Decision]) -> List[Tuple[Decision, BaseException]]:
        """
        Execute decisions in order, each decision's actions in order.

        A failing action abandons the rest of its decision, which is then
        not recorded. Later decisions still run. Returns the failures.
        """
        failures: List[Tuple[Decision, BaseException]] = []
        for decision in decisions:
            try:
                logger.info(f"Executing autonomous decision: {decision.decision}")
                for action in decision.actions:
                    await self.executor.execute(action, decision)
            except Exception as e:
                logger.error(f"Error executing decision {decision.id}: {e}")
                failures.append((decision, e))
                continue

            self._history.append(decision)
        return failures

    async def learn_from_outcomes(self, decisions: List[Decision]) -> None:
        # Hook for adaptive confidence tuning
        logger.info(f"Learning from recent outcomes ({len(decisions)} decisions this cycle)...")

    async def handle_error(self, error: BaseException) -> None:
        """Classify a cycle failure and log recovery intent for recoverable ones."""
        message = str(error).lower()
        if any(marker in message for marker in RECOVERABLE_ERROR_MARKERS):
            logger.info("Attempting auto-recovery from network error...")
        else:
            logger.error(f"Autonomous orchestrator error requires attention: {error}")
