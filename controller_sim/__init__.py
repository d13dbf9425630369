"""
Controller Simulator Module

In-process robot controller for local runs and integration tests.
"""

from .controller_server import SimulatedController

__all__ = ['SimulatedController']
