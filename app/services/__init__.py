"""Service layer: scheduler, caches, upstream clients and the catalog pipeline."""
