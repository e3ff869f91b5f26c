"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document loading (text, markdown, PDF)
- Overlap-aware text chunking
- Namespaced vector indexing and similarity search
- Ingestion and retrieval orchestration
- LLM-as-judge evaluation
"""
