"""Streaming, tool-using chat agent service."""
