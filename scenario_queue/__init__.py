"""Scenario generation queue service for Kaiwa learning paths."""

__version__ = "0.1.0"
