"""
Relational persistence for projects, documents and chunks.

Components:
    - base: Declarative base and id/timestamp mixins
    - models: Project, Document and Chunk ORM models
    - connection: Engine, session factory and transactional scope
    - crud: Session-level create/read/update/delete helpers
"""

from docrag.db.base import Base
from docrag.db.connection import create_tables, get_engine, get_session_factory, session_scope
from docrag.db.models import (
    ChunkModel,
    DocumentModel,
    DocumentStatus,
    ProjectModel,
    ProjectStatus,
)

__all__ = [
    "Base",
    "ChunkModel",
    "DocumentModel",
    "DocumentStatus",
    "ProjectModel",
    "ProjectStatus",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
