"""
Valora HTTP API.
"""
