"""Volunteer training portal backend: assignment graph, checkpoints and progress."""
