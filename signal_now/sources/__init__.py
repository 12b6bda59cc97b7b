"""GitHub access: HTTP client, activity normalization and candidate discovery."""
