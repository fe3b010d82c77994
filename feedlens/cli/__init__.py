"""Command-line interface for feedlens."""
