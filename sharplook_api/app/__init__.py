"""
Application package for the SharpLook marketplace backend.

``core`` holds configuration, persistence, security and the response
envelope; ``services`` holds the business rules of each domain;
``schemas`` validates request bodies; and ``api/v1`` exposes the HTTP
routes.  The FastAPI instance is built by ``main.create_app``.
"""
