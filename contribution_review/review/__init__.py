"""
Contribution review core: record store, pure state machine, transition engine.
"""

from contribution_review.review.engine import ReviewTransitionEngine
from contribution_review.review.state_machine import (
    TRANSITIONS,
    ReviewAction,
    TransitionPlan,
    can_transition,
    next_status,
    plan_transition,
)
from contribution_review.review.store import ContributionRecordStore

__all__ = [
    "TRANSITIONS",
    "ContributionRecordStore",
    "ReviewAction",
    "ReviewTransitionEngine",
    "TransitionPlan",
    "can_transition",
    "next_status",
    "plan_transition",
]
