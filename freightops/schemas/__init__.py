"""
FreightOps Pydantic Schemas
"""
