"""Scriptboard - ad spend reconciliation and script performance statistics"""

__version__ = "1.0.0"
