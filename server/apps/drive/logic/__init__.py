"""Business logic layer for drive app.

This package contains all business logic for entry operations:
- Path resolution and subtree discovery (hierarchy)
- Storage quota ledger
- Folder creation, upload, listing, search and download links
- Soft delete cascade over subtrees

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).
"""
