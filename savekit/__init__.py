"""
savekit - slot-based save/load orchestration.

Modules:
    save: Save protocol (events, package, aggregator, manager, persistence)
    systems: Save handlers for gameplay subsystems
    context: SaveContext owning one save system instance
"""

from savekit.context import SaveContext

__version__ = "0.1.0"

__all__ = ['SaveContext']
