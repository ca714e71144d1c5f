# Middleware package init
"""
CardLink Backend — Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit: only POST /api/clients, rejected before any processing
    2. Request ID: correlation id in a ContextVar and the X-Request-ID header
    3. Logging:    one access line per request with status and duration
"""
