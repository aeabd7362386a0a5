"""Durable capture-job queue."""
