"""Infrastructure layer for drive app.

This package contains integrations with external systems:
- Blob store backend on S3-compatible storage (S3/MinIO/R2)
- Entry metadata helpers (names, MIME types, blob keys)

Keep infrastructure concerns separate from business logic.
"""
