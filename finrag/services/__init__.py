# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers:
#   - chunker.py: Sentence-window text chunking with word overlap
#   - embedder.py: Embedding service clients (Hugging Face, OpenAI-compatible)
#   - vectorstore.py: VectorIndex protocol (ChromaDB, pgvector)
#   - pipeline.py: Retrieval pipeline (ingest + query)
#   - errors.py: Retrieval error taxonomy
#   - parser.py: PDF text extraction with Docling
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - portfolio.py: Portfolio CSV parsing, validation, metrics, risk
# =============================================================================
