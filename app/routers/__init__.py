"""
Procurement Orders - API Routers Package
"""

from app.routers import approvals, budgets, notifications, orders

__all__ = ["approvals", "budgets", "notifications", "orders"]
