"""Database-agnostic type definitions for SQLAlchemy models.

Models use these instead of the PostgreSQL dialect types so the same
metadata can be created on PostgreSQL (production) and SQLite (tests).
"""
from sqlalchemy import JSON, Numeric
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# Renders as UUID on PostgreSQL and CHAR(32) on SQLite
UUIDType = PG_UUID

# All money columns: two decimal places, returned as Decimal
Money = Numeric(12, 2)
