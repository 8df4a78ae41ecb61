"""Funding announcement ingestion pipeline."""
