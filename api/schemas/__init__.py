"""Pydantic models for run state and streaming events."""
