"""
Command-line interface for plasmaeq.

This module provides CLI tools for:
- Listing and self-checking the dense solver backends
- Validating update configuration files
"""

__all__ = []
