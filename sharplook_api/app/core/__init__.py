"""
Cross-cutting infrastructure: settings, database, security, errors,
logging, middleware, pagination and rate limiting.
"""
