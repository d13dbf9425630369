"""
Console Module

Operator side of the robot link: the CRI control client, the position
interface streaming client, the link orchestrator and the position sources.
"""
