"""
Knowledge base backed by Qdrant.

Provides:
- Character-window chunking with overlap
- Batched embedding generation
- Vector storage and similarity search with a minimum-score cutoff
"""
