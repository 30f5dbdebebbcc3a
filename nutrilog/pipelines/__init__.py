"""Analysis pipelines."""
