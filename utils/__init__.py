"""Shared helpers for the issue sync."""
