"""Namespace persistence."""
