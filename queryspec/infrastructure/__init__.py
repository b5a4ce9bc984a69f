"""
Infrastructure Layer

Caching and observability.
"""
