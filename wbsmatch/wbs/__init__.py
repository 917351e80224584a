"""WBS hierarchy: code grammar and batch ingestion."""
