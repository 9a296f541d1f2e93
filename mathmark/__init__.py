"""
Mathmark - Arithmetic assertions embedded in Markdown documents.

Discovers lines like ``2 + 2 = 4`` in prose, groups them by heading, and runs
them on demand or continuously as documents change.

Usage:
    mathmark list <path>     # Show discovered assertions
    mathmark run <path>      # Run assertions once
    mathmark watch <path>    # Re-run assertions when documents change
    mathmark init <path>     # Write a default mathmark.yaml
"""

__version__ = "0.1.0"
__author__ = "Leon Breukelman"
