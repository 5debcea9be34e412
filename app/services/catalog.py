"""
Procurement Orders - Catalog and Role Directory Lookups

Read-only collaborators of the order engine:
- product id -> unit price + availability
- (tenant, role) -> roster of users holding that role
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product import Product
from app.models.user import Role, User


@dataclass(frozen=True)
class CatalogEntry:
    product_id: uuid.UUID
    name: str
    unit_price: Decimal
    is_available: bool


class ProductCatalog(Protocol):
    async def lookup(self, product_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, CatalogEntry]:
        ...


class RoleDirectory(Protocol):
    async def users_with_role(self, tenant_id: uuid.UUID, role: Role) -> List[User]:
        ...


class SqlProductCatalog:
    """Product lookups against the products table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lookup(self, product_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, CatalogEntry]:
        """Price and availability for each known id; unknown ids are simply absent."""
        ids = set(product_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(Product).where(Product.id.in_(ids)))
        return {
            product.id: CatalogEntry(
                product_id=product.id,
                name=product.name,
                unit_price=product.price,
                is_available=product.is_available,
            )
            for product in result.scalars().all()
        }


class SqlRoleDirectory:
    """Active users of a tenant by role, oldest account first."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def users_with_role(self, tenant_id: uuid.UUID, role: Role) -> List[User]:
        result = await self.db.execute(
            select(User)
            .where(
                User.tenant_id == tenant_id,
                User.role == role,
                User.is_active == True,  # noqa: E712
            )
            .order_by(User.created_at, User.email)
        )
        return list(result.scalars().all())
