"""Persistence layer: engine/session handling and ORM models."""
