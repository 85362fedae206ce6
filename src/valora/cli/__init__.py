"""
Valora CLI - command line interface for the Valora memory container

Provides terminal commands for:
- Serving the REST API
- Importing structured and pasted chats
- Exporting memories
"""

from .main import cli

__all__ = ["cli"]
