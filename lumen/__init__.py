"""
Top-level package for the Lumen Discord bot.

This package hosts:
- config loading (YAML + environment) and persona resolution
- the knowledge base pipeline (chunking, embeddings, Qdrant storage)
- daily usage limits and the answer orchestrator
- the command dispatch table and the Discord transport
"""
