"""Shared cross-cutting helpers: exception taxonomy and decorators."""
