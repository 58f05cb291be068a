"""Workflow graph model, traversal engine and persistence."""
