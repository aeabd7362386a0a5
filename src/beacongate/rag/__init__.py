"""Retrieval-augmented knowledge: chunking, embeddings, ingestion and nearest-neighbour search."""
