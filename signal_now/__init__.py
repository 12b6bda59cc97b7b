"""Signal Now: outreach-readiness assessments over GitHub activity."""
