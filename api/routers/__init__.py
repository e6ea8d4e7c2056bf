"""Routers for the athlete support API."""
