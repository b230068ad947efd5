"""
Trust-and-safety enforcement engine for live chat and streaming.

Usage:
    from trust_safety.services.engine import SafetyEngine
    from trust_safety.lib.store import InMemoryStore

    engine = SafetyEngine(InMemoryStore())
"""

__version__ = "0.1.0"
