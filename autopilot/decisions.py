"""
Analysis and decision rules.

Turns an IntelligenceSnapshot into an Analysis (issues, opportunities,
system load) and an Analysis into zero or more Decisions. The rules are
independent: more than one decision can fire in the same cycle.
"""

import logging
from typing import List

from .config import OrchestratorConfig
from .models import (
    Action,
    ActionType,
    Analysis,
    Decision,
    DecisionTrigger,
    IntelligenceSnapshot,
    Issue,
    IssueKind,
    Priority,
    QueueTaskStatus,
)

logger = logging.getLogger(__name__)

FAILED_TASKS_LIMIT = 3
QUEUED_TASKS_LIMIT = 10
HIGH_LOAD_LIMIT = 0.8

QUEUE_UTILIZATION_WEIGHT = 0.5
ACTION_FAILURE_WEIGHT = 0.3


def calculate_system_load(snapshot: IntelligenceSnapshot) -> float:
    """
    Weighted load heuristic in [0, 1].

    0.5 * running/total queue tasks + 0.3 * failed/total agent actions,
    capped at 1. Missing stats contribute nothing.
    """
    load = 0.0

    total_tasks = len(snapshot.queue)
    running_tasks = snapshot.count_tasks(QueueTaskStatus.RUNNING)
    load += (running_tasks / max(total_tasks, 1)) * QUEUE_UTILIZATION_WEIGHT

    if snapshot.stats is not None:
        failed_actions = snapshot.stats.get('failedActions') or 0
        total_actions = snapshot.stats.get('totalActions') or 0
        load += (failed_actions / max(total_actions, 1)) * ACTION_FAILURE_WEIGHT

    return min(load, 1.0)


def analyze(snapshot: IntelligenceSnapshot, max_concurrent_tasks: int) -> Analysis:
    """Derive critical issues, opportunities and load from a snapshot."""
    analysis = Analysis(
        failed_tasks=snapshot.count_tasks(QueueTaskStatus.FAILED),
        queued_tasks=snapshot.count_tasks(QueueTaskStatus.QUEUED),
        running_tasks=snapshot.count_tasks(QueueTaskStatus.RUNNING),
    )

    if analysis.failed_tasks > FAILED_TASKS_LIMIT:
        analysis.critical_issues.append(Issue(
            kind=IssueKind.HIGH_FAILURE_RATE,
            message=f"High failure rate: {analysis.failed_tasks} failed tasks",
            count=analysis.failed_tasks,
        ))
        analysis.recommendations.append("Investigate and auto-retry failed tasks")

    if analysis.queued_tasks > QUEUED_TASKS_LIMIT:
        analysis.critical_issues.append(Issue(
            kind=IssueKind.QUEUE_BACKLOG,
            message=f"Queue backlog: {analysis.queued_tasks} pending tasks",
            count=analysis.queued_tasks,
        ))
        analysis.recommendations.append("Scale up task processing capacity")

    if analysis.running_tasks < max_concurrent_tasks / 2:
        analysis.opportunities.append(Issue(
            kind=IssueKind.UNDERUTILIZED_CAPACITY,
            message="Underutilized capacity - can accept more work",
            count=analysis.running_tasks,
        ))

    analysis.system_load = calculate_system_load(snapshot)
    return analysis


def make_decisions(analysis: Analysis, config: OrchestratorConfig) -> List[Decision]:
    """Synthesize decisions from an analysis, in rule order."""
    decisions: List[Decision] = []

    # Critical issues are handled regardless of feature flags
    if analysis.critical_issues:
        decision = Decision(
            trigger=DecisionTrigger.CRITICAL_ISSUES_DETECTED.value,
            analysis=f"Detected {len(analysis.critical_issues)} critical issues",
            decision='auto_repair_and_optimize',
            confidence=0.85,
            reasoning='System stability requires immediate intervention',
        )
        if analysis.has_issue(IssueKind.HIGH_FAILURE_RATE):
            decision.actions.append(Action(
                type=ActionType.RETRY_FAILED_TASKS.value,
                priority=Priority.HIGH.value,
                description='Automatically retry failed tasks with exponential backoff',
                estimated_duration=120000,
            ))
        if analysis.has_issue(IssueKind.QUEUE_BACKLOG):
            decision.actions.append(Action(
                type=ActionType.SCALE_QUEUE_PROCESSING.value,
                priority=Priority.HIGH.value,
                description='Increase concurrent task processing capacity',
                estimated_duration=60000,
            ))
        decisions.append(decision)

    if analysis.opportunities and config.auto_optimize:
        decisions.append(Decision(
            trigger=DecisionTrigger.OPTIMIZATION_OPPORTUNITIES.value,
            analysis=f"Found {len(analysis.opportunities)} optimization opportunities",
            decision='auto_optimize_performance',
            confidence=0.75,
            reasoning='Proactive optimization improves overall system efficiency',
            actions=[Action(
                type=ActionType.OPTIMIZE_RESOURCE_ALLOCATION.value,
                priority=Priority.MEDIUM.value,
                description='Optimize resource allocation based on current workload',
                estimated_duration=180000,
            )],
        ))

    if analysis.system_load > HIGH_LOAD_LIMIT:
        decisions.append(Decision(
            trigger=DecisionTrigger.HIGH_SYSTEM_LOAD.value,
            analysis=f"System load at {analysis.system_load * 100:.1f}%",
            decision='preventive_maintenance',
            confidence=0.9,
            reasoning='High system load indicates need for preventive action',
            actions=[Action(
                type=ActionType.PREVENTIVE_MAINTENANCE.value,
                priority=Priority.HIGH.value,
                description='Perform preventive maintenance to avoid system overload',
                estimated_duration=300000,
            )],
        ))

    if decisions:
        logger.debug(f"Synthesized {len(decisions)} decisions: {[d.trigger for d in decisions]}")
    return decisions
