"""Service layer - async orchestration between the HTTP adapter and the index core."""

from .index_service import IndexService


__all__ = ["IndexService"]
