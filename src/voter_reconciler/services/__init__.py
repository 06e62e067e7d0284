"""Service layer — database-backed import orchestration."""
