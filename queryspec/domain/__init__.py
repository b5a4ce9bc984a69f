"""
Domain Layer

Query compilation and orchestration.
"""
