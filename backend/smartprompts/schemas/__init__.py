"""
Pydantic schemas for request and response payloads.
"""
