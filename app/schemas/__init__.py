"""
Procurement Orders - Pydantic Schemas Package
"""
