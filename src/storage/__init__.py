"""Upsert engine for resources submitted from the editor."""

from src.storage.resource_storage import ResourceStorageService, ValidationError

__all__ = ['ResourceStorageService', 'ValidationError']
