"""
Console Motion Module

Position value object and the position sources that feed the streaming
channel.
"""

from .position_set import PositionSet
from .position_source import PositionSource
from .jog_generator import JogMotionGenerator
from .csv_generator import CSVMotionGenerator

__all__ = ['PositionSet', 'PositionSource', 'JogMotionGenerator', 'CSVMotionGenerator']
