# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - documents.py: PDF upload, document listing and deletion
#   - ask.py: Question answering and raw similarity search
#   - portfolio.py: Portfolio upload, advice, comparison, dashboard
#   - deps.py: Dependency providers and error-to-HTTP translation
# =============================================================================
