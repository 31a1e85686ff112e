"""In-process full-text search: index, ranking and suggestions."""
