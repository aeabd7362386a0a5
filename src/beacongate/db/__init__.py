"""Relational store: ORM models, engine setup and the repository."""
