"""Streaming relay between HTTP clients and the Gemini completion service."""
