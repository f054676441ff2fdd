"""
Agent Module
============

Targeting and reliability components used by the agent loop.

This package contains:
    - matcher: Semantic target request to detected element
    - targeting: Capture-to-coordinate pipeline with per-session serialization
    - history: Action history, stagnation and thrashing detection
"""

from vio.agent.history import ActionRecord, Outcome, StagnationVerdict, StepHistory
from vio.agent.matcher import TargetRequest, match_target
from vio.agent.targeting import Observation, Resolution, TargetingPipeline

__all__ = [
    "ActionRecord",
    "Observation",
    "Outcome",
    "Resolution",
    "StagnationVerdict",
    "StepHistory",
    "TargetRequest",
    "TargetingPipeline",
    "match_target",
]
