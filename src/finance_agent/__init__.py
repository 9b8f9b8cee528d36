"""
Finance Agent - a stateful personal finance assistant that streams its turns.
"""

__version__ = "0.1.0"
