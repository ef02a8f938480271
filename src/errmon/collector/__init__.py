"""Collector service receiving batches from errmon clients."""
