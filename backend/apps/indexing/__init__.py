"""
Document indexing app.

Provides:
- Text extraction from uploaded files
- Overlapping text chunking
- Batched document embeddings
- The indexing job queue and worker
"""
