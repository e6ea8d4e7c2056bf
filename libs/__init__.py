"""Shared libraries for the athlete support agent.

This package contains reusable components:
- common: settings and the error taxonomy
- resilience: circuit breakers and retry policies
- caching: Redis connection management
- memory: conversation summaries and run checkpoints
- utils: LLM output parsing and deduplication helpers
"""
