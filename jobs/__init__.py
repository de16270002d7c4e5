"""Batch jobs that drive the pipeline."""
