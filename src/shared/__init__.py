"""
Shared Layer - Cross-Cutting Concerns
Settings, logging, error taxonomy, database and Redis access
"""
