"""Repositories persisting the training graph."""
