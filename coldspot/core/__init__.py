"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants, default cache names, colour scheme
- exceptions: Pipeline exception hierarchy
- artifact_store: Cache of intermediate artifacts (file or in-memory)
"""
