"""
Codegen Autopilot Package
=========================

Autonomous orchestrator that watches the Codegen agent service,
classifies its health and dispatches remediation actions.
"""

from .models import (
    Action,
    ActionType,
    Analysis,
    Decision,
    DecisionTrigger,
    IntelligenceSnapshot,
    Issue,
    IssueKind,
    Metric,
    MetricStatus,
    Priority,
    Trend,
)

from .config import (
    OrchestratorConfig,
    load_settings,
    orchestrator_config_from_settings,
)

from .metrics import MetricsTracker
from .actions import ActionExecutor

from .orchestrator import (
    AutonomousOrchestrator,
    DecisionExecutionError,
)

__all__ = [
    'Action',
    'ActionType',
    'Analysis',
    'Decision',
    'DecisionTrigger',
    'IntelligenceSnapshot',
    'Issue',
    'IssueKind',
    'Metric',
    'MetricStatus',
    'Priority',
    'Trend',
    'OrchestratorConfig',
    'load_settings',
    'orchestrator_config_from_settings',
    'MetricsTracker',
    'ActionExecutor',
    'AutonomousOrchestrator',
    'DecisionExecutionError',
]
