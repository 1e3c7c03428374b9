"""Adapters for the browser, the assistant CLI and storage."""
