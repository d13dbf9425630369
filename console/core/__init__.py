"""
Console Core Module

Link state and the orchestrator that sequences both link channels.
"""

from .link_state import LinkState, LinkStateTracker
from .link_orchestrator import LinkOrchestrator, HandshakeTimeouts

__all__ = ['LinkState', 'LinkStateTracker', 'LinkOrchestrator', 'HandshakeTimeouts']
