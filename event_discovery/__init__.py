"""
Event Discovery Cache

In-memory cache engine and resilience layer used by the event discovery
backend to front external event providers.
"""

__version__ = "0.1.0"
