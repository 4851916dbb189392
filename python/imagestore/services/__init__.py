"""Service layer for image operations."""
