"""
Service layer for extraction: providers, normalization and collaborators.

Modules here take plain arguments and an optional logger callable; they do
not write task rows.
"""
