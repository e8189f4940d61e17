"""Post storage."""
