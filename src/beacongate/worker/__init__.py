"""Capture worker: orchestration and the queue consumer loop."""
