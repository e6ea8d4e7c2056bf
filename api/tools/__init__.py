"""Retrieval and web search tools."""
