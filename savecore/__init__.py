"""
savecore - infrastructure for the slot save system.

Modules:
    core: Typed event bus
    crypto: Field-level cipher and key handling
    codec: Array-block value codec
    config: Save system configuration
    log: Logging setup
"""

__version__ = "0.1.0"
