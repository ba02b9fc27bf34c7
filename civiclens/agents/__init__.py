"""
Agent implementations for CivicLens.

Contains all agent modules that process complaints through the pipeline:
- Ingestion Agent (validation and cleaning)
- Understanding Agent (fingerprint generation)
- Discovery Agent (clustering)
- Priority Agent (urgency score and trend)
- Explainability Agent (keywords and narrative)
"""
