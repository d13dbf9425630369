"""
Common Module

Framing, socket helpers, timers and instrumentation shared by the console
link clients and the simulated controller.
"""
