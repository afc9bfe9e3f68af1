"""Customer and project service for time tracking."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any, cast

from .errors import NotFound
from .models import Collection, Customer, Project, utc_now
from .storage import LocalStore

logger = logging.getLogger(__name__)

# Customer fields callers may change through update().
CUSTOMER_FIELDS = frozenset(
    {
        "name",
        "invoice_ref",
        "rate",
        "currency",
        "vat",
        "billing_address",
        "cost_place",
        "notes",
    }
)


class CustomerService:
    """Manage customers and their projects in the local store.

    Args:
        store: Open local store.
        clock: Returns the current UTC time.
        id_factory: Generates ids for new customers and projects.
    """

    def __init__(
        self,
        store: LocalStore,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.store = store
        self.clock = clock
        self.id_factory = id_factory

    def get(self, customer_id: str) -> Customer:
        customer = self.store.get(Collection.CUSTOMERS, customer_id)
        if customer is None:
            raise NotFound(Collection.CUSTOMERS.value, customer_id)
        return cast(Customer, customer)

    def list(self, include_archived: bool = False) -> list[Customer]:
        """Customers sorted by name; archived ones only on request."""
        filter = None if include_archived else {"archived": False}
        customers = self.store.list(Collection.CUSTOMERS, filter)
        return sorted(customers, key=lambda c: (c.name.lower(), c.id))  # type: ignore[attr-defined]

    def create(self, name: str, **fields: Any) -> Customer:
        unknown = set(fields) - CUSTOMER_FIELDS
        if unknown:
            raise ValueError(f"Unknown customer fields: {sorted(unknown)}")
        customer = Customer(
            id=self.id_factory(),
            name=name,
            updated_at=self.clock(),
            **fields,
        )
        logger.info("Created customer %s", customer.name)
        return self.store.insert(customer)  # type: ignore[return-value]

    def update(self, customer_id: str, **changes: Any) -> Customer:
        unknown = set(changes) - CUSTOMER_FIELDS
        if unknown:
            raise ValueError(f"Unknown customer fields: {sorted(unknown)}")
        return self._save(self.get(customer_id), **changes)

    def archive(self, customer_id: str) -> Customer:
        return self._save(self.get(customer_id), archived=True)

    def unarchive(self, customer_id: str) -> Customer:
        return self._save(self.get(customer_id), archived=False)

    def _save(self, customer: Customer, **changes: Any) -> Customer:
        updated = Customer.model_validate(
            {**customer.model_dump(), **changes, "updated_at": self.clock()}
        )
        return self.store.update(updated)  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(
        self,
        customer_id: str,
        name: str,
        code: str | None = None,
        notes: str | None = None,
    ) -> Project:
        """Create a project for an existing customer.

        Raises:
            NotFound: If the customer does not exist.
        """
        self.get(customer_id)
        project = Project(
            id=self.id_factory(),
            customer_id=customer_id,
            name=name,
            code=code,
            notes=notes,
            updated_at=self.clock(),
        )
        return self.store.insert(project)  # type: ignore[return-value]

    def list_projects(self, customer_id: str | None = None) -> list[Project]:
        filter = {"customer_id": customer_id} if customer_id else None
        projects = self.store.list(Collection.PROJECTS, filter)
        return sorted(projects, key=lambda p: (p.name.lower(), p.id))  # type: ignore[attr-defined]
