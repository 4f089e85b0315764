"""Command-line interface for sessiontap."""
