"""Command line interface for dynacache."""
