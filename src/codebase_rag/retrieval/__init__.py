"""
Retrieval layer of the codebase RAG pipeline.

This package covers everything needed to turn a source tree into searchable
vectors and to fetch the most relevant chunks for a question: a file
loader, a heuristic code splitter, embedding model wrappers, the JSON
vector store, cosine recall and an LLM reranker.

Submodules
----------
document_loader
    Selects and reads eligible source files under a root directory.
text_splitter
    Splits files into function, class and header chunks.
embedder
    Embedding model wrappers and sequential chunk embedding.
vector_store
    Versioned JSON persistence of indexed chunks.
retriever
    Cosine-similarity recall over the whole index.
reranker
    LLM relevance scoring of recall candidates.
"""
