"""
Chat transcript parsing.
"""

from .parser import ChatFormat, ChatParser

__all__ = ["ChatFormat", "ChatParser"]
