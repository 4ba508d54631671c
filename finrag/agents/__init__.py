# =============================================================================
# Agents Package — LLM-Backed Generation
# =============================================================================
#   - analyst.py: Answers questions from retrieved document chunks
#   - advisor.py: Investment advice and portfolio comparison
# =============================================================================
