"""Lambda handler answering metric count queries."""

from .handler import execute_query, handler

__all__ = ["handler", "execute_query"]
