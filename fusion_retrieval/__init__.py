"""Fusion retrieval service.

Concurrently searches a temporal memory store and configurable external
knowledge sources, fuses their scores under a tunable strategy and returns
one explainable ranked result list.
"""

__version__ = "1.0.0"
