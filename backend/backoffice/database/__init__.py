"""Persistence layer: declarative base, engine management and ORM models."""
