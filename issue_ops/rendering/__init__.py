"""Markdown notice rendering."""
