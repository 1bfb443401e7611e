"""Command-line interface for QIC."""
