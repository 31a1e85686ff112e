"""Content source adapter: article files to search records."""
