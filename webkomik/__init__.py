"""
WebKomik catalog service.

Works, chapters and pages served over HTTP behind bearer-token auth.
"""

__version__ = "0.1.0"
