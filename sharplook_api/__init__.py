"""
Top-level package for the SharpLook API.

All functionality lives in the ``app`` subpackage; the ASGI application
is importable as ``sharplook_api.app.main:app``.
"""

__all__ = []
