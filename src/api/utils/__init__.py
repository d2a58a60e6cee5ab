"""Helpers for API response rendering."""
