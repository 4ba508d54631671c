# =============================================================================
# Document & Portfolio Advisor
# =============================================================================
# A retrieval-augmented Q&A service over uploaded PDF documents, plus
# CSV portfolio analysis with LLM-generated investment advice.
#
# Package structure:
#   finrag/
#   ├── api/          → FastAPI route handlers (documents, query, portfolios)
#   ├── agents/       → LLM-backed answer and advice generation
#   ├── db/           → Async SQLAlchemy engine, ORM models, portfolio storage
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → Retrieval core (chunking, embedding, vector index,
#                        pipeline), PDF parsing, LLM providers, portfolio math
# =============================================================================
