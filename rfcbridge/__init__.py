"""
rfcbridge - JSON command bridge for remote function calls.
"""

__version__ = "0.1.0"
__logo__ = "⇄"
