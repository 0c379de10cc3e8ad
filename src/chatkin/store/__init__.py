"""Workspace datastore and file storage adapters."""
