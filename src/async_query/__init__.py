# src/async_query/__init__.py

"""
Async Query Library Initialization.

This package builds parameterized PostgreSQL queries from a declared column
projection, pages through results, and runs them against an asyncpg pool
with a small set of repository helpers.

It initializes a logger with a NullHandler and makes the projection, query
builder, pagination types, helpers, exceptions and base repository
available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for "async_query".
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Core Interface and Exception Exports
# --------------------------------------------------------------------------
from .base.interfaces import Filters, Repository
from .base.exceptions import (
    DatabaseNotReadyException,
    InvalidSortFieldException,
    KeyAlreadyExistsException,
    NoRowsException,
    ObjectNotFoundException,
)

# --------------------------------------------------------------------------
# Query Building Exports
# --------------------------------------------------------------------------
# ProjectionMap declares the table and its columns; Builder renders SQL
# against it.
from .base.projection import JoinClause, ProjectionMap
from .base.query import Builder, Condition, SortField, parse_sort_fields

# --------------------------------------------------------------------------
# Pagination and Configuration Exports
# --------------------------------------------------------------------------
from .base.pagination import PageRequest, PageResult, new_page_result
from .config import DatabaseConfig, DatabaseEnv, PaginationConfig, PaginationEnv

# --------------------------------------------------------------------------
# Execution Helper Exports
# --------------------------------------------------------------------------
from .base.repository import (
    exec_expect_one,
    map_error,
    query_count,
    query_many,
    query_one,
    with_tx,
)
from .db_implementations.postgresql_database import PostgresDatabase

__all__ = [
    # Core
    "Repository",
    "Filters",
    # Exceptions
    "ObjectNotFoundException",
    "KeyAlreadyExistsException",
    "NoRowsException",
    "DatabaseNotReadyException",
    "InvalidSortFieldException",
    # Query
    "ProjectionMap",
    "JoinClause",
    "Builder",
    "Condition",
    "SortField",
    "parse_sort_fields",
    # Pagination
    "PageRequest",
    "PageResult",
    "new_page_result",
    # Configuration
    "PaginationConfig",
    "PaginationEnv",
    "DatabaseConfig",
    "DatabaseEnv",
    # Helpers
    "with_tx",
    "query_one",
    "query_many",
    "query_count",
    "exec_expect_one",
    "map_error",
    # Implementations
    "PostgresDatabase",
    # Logging
    "logger",
]
