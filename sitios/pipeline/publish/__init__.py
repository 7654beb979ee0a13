"""Publish stage sequencing."""

from .orchestrator import Observer, PublishOrchestrator, PublishResult, PublishState

__all__ = ["Observer", "PublishOrchestrator", "PublishResult", "PublishState"]
