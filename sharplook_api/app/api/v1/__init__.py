"""
Version 1 of the SharpLook API, mounted under ``/api/v1``.
"""
