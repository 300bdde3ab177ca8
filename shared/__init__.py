"""Shared package for the Shogunito production-tracking API.

It includes:

- Database models (models.py) - SQLAlchemy declarative models for the production hierarchy
- Enums (enums.py) - Roles, entity and link types, shot and asset types
- Validation utilities (validation.py, schemas.py) - Input validation, sanitization and Pydantic schemas
- Utility functions (utils.py) - File helpers and thumbnail generation
"""
