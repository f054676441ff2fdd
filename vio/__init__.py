"""
VIO Agent
=========

Perception-to-action targeting core for a screen-driving agent.

This package turns raw screen captures into deduplicated UI element
detections, resolves semantic click targets to device coordinates across
multi-monitor and HiDPI setups, and watches the action history for loops.

Modules:
    - vision: Display enumeration, capture, letterboxing, inference, decoding, NMS
    - agent: Target matching, action history and the targeting pipeline
    - api: FastAPI routes exposing per-session pipelines
    - utils: Logging helpers
"""

__version__ = "1.0.0"
