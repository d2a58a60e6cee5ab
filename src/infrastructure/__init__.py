"""Infrastructure layer: MongoDB connectivity and data persistence.

The API layer depends on this package through the repository and the
connection manager; nothing here knows about HTTP.
"""
