# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of JSON bodies coming INTO the API. FastAPI validates them and
# answers 422 with field-level errors before a handler runs.
#
# File uploads (POST /upload, POST /upload-portfolio) are multipart and
# have no body model; their checks live in the route handlers.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    """
    Request body for POST /query and POST /search.

    Example:
        {"question": "What was the total revenue in Q3?", "top_k": 3}
    """

    question: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Natural-language question about the uploaded documents",
        examples=["What was the total revenue in Q3?"],
    )

    # None → settings.retrieval_top_k
    top_k: int | None = Field(
        default=None,
        ge=1,
        le=50,
        description="Number of chunks to retrieve (default from config, 3)",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"question": "What was the total revenue in Q3?"},
                {"question": "Summarise the risk factors", "top_k": 5},
            ]
        }
    )


class AdviceRequest(BaseModel):
    """Request body for POST /portfolio/{portfolio_id}/advice."""

    specific_question: str | None = Field(
        default=None,
        max_length=2000,
        description="Optional question appended to the advice prompt",
        examples=["Should I reduce my technology exposure?"],
    )


class ComparePortfoliosRequest(BaseModel):
    """Request body for POST /compare-portfolios."""

    portfolio1_id: str = Field(..., min_length=1)
    portfolio2_id: str = Field(..., min_length=1)
