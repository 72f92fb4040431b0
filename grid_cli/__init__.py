"""Grid CLI - interactive terminal client for Grid smart accounts."""

__version__ = "0.1.0"
