"""Command-line interface for rfcbridge."""
