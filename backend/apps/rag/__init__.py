"""
RAG (Retrieval Augmented Generation) app.

Provides:
- Query embedding
- User-scoped exhaustive similarity retrieval
- Grounded answer generation with source citations
"""
