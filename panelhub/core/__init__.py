"""Ambient infrastructure: settings, logging and the storage collaborator."""
