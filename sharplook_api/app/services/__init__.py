"""
Service layer.

Each service encapsulates the business rules of one domain and talks
to SQLite directly.  Handlers call services with plain dictionaries and
services raise ``AppError`` subclasses which the exception handlers in
``core.errors`` turn into error envelopes.
"""
