"""Athlete support agent API service.

This package contains the FastAPI application and the answer-generation
pipeline behind it.

Main components:
- main.py: FastAPI application factory
- models.py: Pydantic models for requests and responses
- orchestrators/: graph engine, nodes, routing and stream adapter
- tools/: hybrid retrieval and web search
- llm/: per-role language model service
"""

# Avoid importing heavy modules (e.g., the FastAPI app) at package import time.
__all__ = []
