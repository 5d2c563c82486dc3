"""Base service class with tenant isolation guardrails."""

from typing import Optional, TypeVar

from sqlalchemy.orm import Session

from tenantgate_api.errors import NotFoundError

ModelT = TypeVar("ModelT")


class BaseService:
    """Base service with tenant isolation enforcement."""

    def __init__(self, db: Session, tenant_id: Optional[str] = None):
        """Initialize service with tenant context."""
        self.db = db
        self.tenant_id = tenant_id

    def _enforce_tenant(self, tenant_id: Optional[str] = None) -> str:
        """Enforce tenant_id is set and return it."""
        tenant_id = tenant_id or self.tenant_id
        if not tenant_id:
            raise ValueError("tenant_id must be provided for tenant-isolated operations")
        return tenant_id

    def scoped(self, model, tenant_id: Optional[str] = None):
        """Query over model restricted to the tenant."""
        tenant_id = self._enforce_tenant(tenant_id)
        return self.db.query(model).filter(model.tenant_id == tenant_id)

    def get_owned(self, model: type[ModelT], object_id: str, tenant_id: Optional[str] = None) -> ModelT:
        """Fetch by (id, tenant_id).

        Rows of other tenants and missing rows both raise the same NotFoundError.
        """
        if not object_id:
            raise NotFoundError()
        obj = self.scoped(model, tenant_id).filter(model.id == object_id).first()
        if obj is None:
            raise NotFoundError()
        return obj
