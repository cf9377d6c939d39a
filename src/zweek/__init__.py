"""Zweek - local AI coding assistant.

Requests are routed by a small resident model, then answered by a reasoning
model whose thinking and answer stream into separate panes.
"""

__version__ = "0.1.0"
