"""Quarry: datastore orchestration core."""
