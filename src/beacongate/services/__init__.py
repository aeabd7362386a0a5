"""Reviewer-triggered actions over the capture pipeline."""
