"""HTTP API layer for rate limit fallback.

This module provides FastAPI integration for feeding host events and
inspecting metrics and learned patterns. It's an optional component that
requires the 'http' extra to be installed:

    pip install rate-limit-fallback[http]
"""
