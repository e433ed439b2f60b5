"""
Lifecycle Module.

Exam state machine, stake resolution and the orchestrator that ties
commitments, exams and grading together.
"""

from burner.lifecycle.orchestrator import CurrentUser, LifecycleOrchestrator
from burner.lifecycle.resolver import MESSAGES, StakeResolver, resolve
from burner.lifecycle.transitions import can_transition, require_transition, valid_transitions

__all__ = [
    "MESSAGES",
    "CurrentUser",
    "LifecycleOrchestrator",
    "StakeResolver",
    "can_transition",
    "require_transition",
    "resolve",
    "valid_transitions",
]
