"""Pydantic models for requests, agents and tool policies."""
