"""
Position source capability.

Anything with a get_position_set() method of this shape can drive the
streaming channel; no base class is required. The channel holds either a
source or None (hold the current position).
"""

from typing import Protocol

from .position_set import PositionSet


class PositionSource(Protocol):

    def get_position_set(self, current_position: PositionSet, elapsed_ms: float) -> PositionSet:
        """
        Return the next target position.

        Args:
            current_position: Latest feedback position from the controller
            elapsed_ms: Time since the previous call in milliseconds
        """
        ...
