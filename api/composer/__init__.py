"""Prompt templates and deterministic response text (referrals, disclaimers, empathy)."""
