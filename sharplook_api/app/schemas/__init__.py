"""
Pydantic schemas for request payloads.

Each resource module defines the bodies its endpoints accept.  Service
methods receive plain dictionaries produced with
``model_dump(exclude_unset=True)`` so partial updates only touch the
fields a client actually sent.
"""
