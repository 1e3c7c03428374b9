"""Ports — interfaces between the domain and its adapters."""
