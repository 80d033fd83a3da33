"""Ingestion: raw export text -> tables -> column mappings -> typed records."""
