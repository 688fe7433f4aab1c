"""Event ingestion and trade lifecycle."""
