"""Infrastructure adapters: storage repositories, SMTP ingest, external lookups."""
