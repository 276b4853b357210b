"""
Notekeeper Backend - Middleware Package
========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → [Session] → Route

    Responses travel the chain in reverse, so the request id header is
    present on every response and the access log sees the final status
    (including redirects to the sign-in page).
"""
