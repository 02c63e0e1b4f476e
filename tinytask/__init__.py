"""
TinyTask - task graph and queueing engine for coordinating AI agents.
"""

__version__ = "0.1.0"
