"""Conversation policy: trigger decisions, loop guard, rate ceiling."""

from llmirc.policy.loop_guard import LoopGuard, PairState
from llmirc.policy.rate import RateWindow
from llmirc.policy.trigger import IdentityResolver, LeadTimer, TriggerPolicy

__all__ = [
    "IdentityResolver",
    "LeadTimer",
    "LoopGuard",
    "PairState",
    "RateWindow",
    "TriggerPolicy",
]
