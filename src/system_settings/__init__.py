"""
System Settings bounded context
Tenant-scoped configuration aggregates with history, rollback and cache coherence
"""
