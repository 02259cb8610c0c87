"""
Autopilot Data Model
====================

Records produced and consumed by the autonomous orchestrator:
- Decision / Action: what the orchestrator chose to do and why
- Metric: named health readings with derived status and trend
- IntelligenceSnapshot / Analysis: the per-cycle view of the agent service
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, asdict, field
from enum import Enum


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def generate_decision_id() -> str:
    """Opaque decision id: autonomous-<epoch ms>-<9 random chars>."""
    return f"autonomous-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class ActionType(Enum):
    """Remediation/optimization operations the orchestrator can dispatch."""
    RETRY_FAILED_TASKS = "retry_failed_tasks"
    SCALE_QUEUE_PROCESSING = "scale_queue_processing"
    OPTIMIZE_RESOURCE_ALLOCATION = "optimize_resource_allocation"
    PREVENTIVE_MAINTENANCE = "preventive_maintenance"


class Priority(Enum):
    """Informational action priority; does not reorder execution."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DecisionTrigger(Enum):
    """Symbolic cause recorded on a decision."""
    CRITICAL_ISSUES_DETECTED = "critical_issues_detected"
    OPTIMIZATION_OPPORTUNITIES = "optimization_opportunities"
    HIGH_SYSTEM_LOAD = "high_system_load"


class MetricStatus(Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class Trend(Enum):
    """Direction of a backlog/load metric. Growth is bad, so it is 'declining'."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class IssueKind(Enum):
    """Structured diagnostic kinds found during analysis."""
    HIGH_FAILURE_RATE = "high_failure_rate"       # critical issue
    QUEUE_BACKLOG = "queue_backlog"               # critical issue
    UNDERUTILIZED_CAPACITY = "underutilized_capacity"  # opportunity


class QueueTaskStatus(Enum):
    """Status values reported for queued tasks by the agent service."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Action:
    """One unit of remediation/optimization work inside a decision."""
    type: str
    priority: str
    description: str
    estimated_duration: int  # milliseconds, informational only

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Action':
        """Create from dictionary."""
        return cls(
            type=data['type'],
            priority=data.get('priority', Priority.MEDIUM.value),
            description=data.get('description', ''),
            estimated_duration=int(data.get('estimated_duration', data.get('estimatedDuration', 0))),
        )


@dataclass
class Decision:
    """A synthesized orchestration judgment bundling one or more actions."""
    trigger: str
    analysis: str
    decision: str
    confidence: float
    reasoning: str
    actions: List[Action] = field(default_factory=list)
    id: str = field(default_factory=generate_decision_id)
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Decision':
        """Create from dictionary."""
        return cls(
            id=data['id'],
            timestamp=data['timestamp'],
            trigger=data['trigger'],
            analysis=data.get('analysis', ''),
            decision=data.get('decision', ''),
            confidence=float(data.get('confidence', 0.0)),
            reasoning=data.get('reasoning', ''),
            actions=[Action.from_dict(a) for a in data.get('actions', [])],
        )


@dataclass
class Metric:
    """Latest reading of a named health indicator."""
    name: str
    value: float
    threshold: float
    status: str = MetricStatus.NORMAL.value
    trend: str = Trend.STABLE.value
    last_updated: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Issue:
    """A diagnostic found during analysis, with its human-readable text."""
    kind: IssueKind
    message: str
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.value, 'message': self.message, 'count': self.count}


@dataclass
class IntelligenceSnapshot:
    """Partial-failure tolerant view of the agent service for one cycle."""
    repositories: List[Dict[str, Any]] = field(default_factory=list)
    queue: List[Dict[str, Any]] = field(default_factory=list)
    stats: Optional[Dict[str, Any]] = None
    system_health: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=utc_now_iso)
    errors: Dict[str, str] = field(default_factory=dict)

    def count_tasks(self, status: QueueTaskStatus) -> int:
        """Number of queued tasks currently in the given status."""
        return sum(1 for task in self.queue if task.get('status') == status.value)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Analysis:
    """Issues, opportunities and load derived from a snapshot."""
    critical_issues: List[Issue] = field(default_factory=list)
    opportunities: List[Issue] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    system_load: float = 0.0
    failed_tasks: int = 0
    queued_tasks: int = 0
    running_tasks: int = 0

    def has_issue(self, kind: IssueKind) -> bool:
        return any(issue.kind == kind for issue in self.critical_issues)

    def metric_values(self) -> Dict[str, float]:
        """Values for the metric table refreshed on every analysis."""
        return {
            'queue.failed': self.failed_tasks,
            'queue.pending': self.queued_tasks,
            'queue.running': self.running_tasks,
            'system.load': self.system_load,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'critical_issues': [i.to_dict() for i in self.critical_issues],
            'opportunities': [i.to_dict() for i in self.opportunities],
            'recommendations': list(self.recommendations),
            'system_load': self.system_load,
            'failed_tasks': self.failed_tasks,
            'queued_tasks': self.queued_tasks,
            'running_tasks': self.running_tasks,
        }
