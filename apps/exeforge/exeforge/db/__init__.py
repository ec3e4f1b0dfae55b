"""Persistence layer for the executable cache."""
