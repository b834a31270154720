#!/usr/bin/env python3
"""
Exception types raised by the scaled message-passing engine.
"""

from typing import Optional


class EngineError(Exception):
    """Base class for all engine failures."""


class ConfigurationError(EngineError, ValueError):
    """Caller bug: incompatible families, bad shapes or non-tree topology."""


class NumericalError(EngineError, ArithmeticError):
    """A computation left the numerically valid domain.

    Args:
        message: Human readable description
        node: Name of the graph node whose computation failed, if known
        reason: Short machine readable tag, e.g. ``"DegenerateFusion"``
    """

    def __init__(self, message: str, node: Optional[str] = None,
                 reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.node = node
        self.reason = reason

    def __str__(self):
        text = self.message
        if self.reason:
            text = f"{self.reason}: {text}"
        if self.node is not None:
            text = f"{text} (at node {self.node!r})"
        return text


class StaleMessageError(EngineError):
    """A message slot or marginal was read before being recomputed."""
