"""Cross-component plumbing: the application event bus."""

from src.pipeline.event_bus import EventBus

__all__ = ["EventBus"]
