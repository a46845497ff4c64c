"""Slack relay for an AnythingLLM backend.

Inbound Slack messages are deduplicated, bound to a persistent remote thread
and answered with size-bounded ``rich_text`` chunks. The pieces are wired
together by :func:`spherebot.pipeline.build_processor`.
"""

from .config import Settings, load_settings

__all__ = ["Settings", "load_settings"]
