"""
Core module.

Exports:
- EventBus, Event, EventHandler: Event system
"""

from savecore.core.events import EventBus, Event, EventHandler

__all__ = [
    "EventBus",
    "Event",
    "EventHandler",
]
