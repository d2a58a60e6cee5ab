"""Centivo Users API.

An async HTTP service exposing the ``users`` collection of a MongoDB
database, with an age-based visibility rule and a self-healing database
connection.

Architecture Overview:
- **API Layer**: FastAPI with async request handling and middleware
- **Core Layer**: Shared utilities, configuration, and cross-cutting concerns
- **Infrastructure Layer**: MongoDB connection lifecycle, indexes and data access
"""
