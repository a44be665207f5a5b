"""Command-line interface for FileCacher."""
