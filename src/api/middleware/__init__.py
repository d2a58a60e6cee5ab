"""FastAPI middleware for cross-cutting request/response concerns.

- **SecurityHeadersMiddleware**: Adds security headers (HSTS, X-Frame-Options, etc.)
- **RequestContextMiddleware**: Manages correlation and request IDs
- **RequestLoggingMiddleware**: Structured logging with slow request detection
- **error_handler**: Exception handlers producing the error envelope

Middleware run in reverse order of registration:
1. Security headers (first to process, last to respond)
2. Request context (sets up correlation IDs)
3. Request logging (logs with correlation context)
"""
