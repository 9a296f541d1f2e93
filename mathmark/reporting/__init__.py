"""
Mathmark Reporting.

Render trees and run results to the console.
"""

from mathmark.reporting.console import ConsoleReporter, render_tree

__all__ = [
    "ConsoleReporter",
    "render_tree",
]
