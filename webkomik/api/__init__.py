"""
HTTP API.
"""

from webkomik.api.app import create_app

__all__ = ["create_app"]
