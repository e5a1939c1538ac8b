"""Structured event envelope and in-memory event store shared by all processes."""
