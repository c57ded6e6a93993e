"""Utility modules for photoframe."""
