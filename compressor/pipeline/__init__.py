"""Dispatch and per-file processing."""
