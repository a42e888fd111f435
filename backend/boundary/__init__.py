"""
Boundary layer for external system integrations.

Handles all interactions with the relational database backing the context
store: ORM models, CRUD operations and connection management.
"""
