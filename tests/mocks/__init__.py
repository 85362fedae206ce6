"""
Test doubles for Valora
=======================
In-process stand-ins for the aiohttp transport and for plugins, so webhook
and integration tests run without network access.

Usage:
    from tests.mocks import FakeSession, RecordingPlugin
"""

from .mock_http import FakeResponse, FakeSession
from .mock_plugins import FailingPlugin, RecordingPlugin

__all__ = ["FakeResponse", "FakeSession", "FailingPlugin", "RecordingPlugin"]
