"""Embedded full-text search for research publications."""
