"""Database session and transaction helpers."""
