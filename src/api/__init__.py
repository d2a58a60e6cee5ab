"""HTTP API layer of the Centivo Users API, built on FastAPI.

Key components:
- **main**: Application factory and lifespan (database connect/close)
- **routes**: User and health endpoints
- **middleware**: Security headers, request context, logging, error handling
- **schemas**: Pydantic models for responses
- **utils**: orjson rendering and MongoDB document conversion
"""
