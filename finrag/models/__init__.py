# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Defines request/response schemas for the API.
# These are SEPARATE from the database models (finrag/db/models.py), so
# stored embedding vectors never leak into API responses.
# =============================================================================
