# src/tradearena/middleware/__init__.py

"""Middleware components for the TradeArena API."""

from .logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
