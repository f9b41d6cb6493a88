"""
Service layer: storage, rate limiting, usage accounting, billing and optimization.
"""
