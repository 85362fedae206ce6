"""
Third-party integrations shipped as Valora plugins.
"""

from .validr import ValidrPlugin

__all__ = ["ValidrPlugin"]
