"""Explicit tenant handles.

Every store call goes through a Tenant, which pairs a tenant database name
with its connection manager. Nothing in the ledger relies on a process-wide
"current database".
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from threading import Lock

from tax_event_ledger.exceptions import UnknownTenantError
from tax_event_ledger.repositories.interfaces import Database, Repositories


@dataclass
class Tenant:
    db: str
    database: Database
    _repos: Repositories | None = field(default=None, init=False, repr=False)

    @property
    def repos(self) -> Repositories:
        if self._repos is None:
            self._repos = self.database.repositories()
        return self._repos


class TenantRegistry:
    """Maps tenant database names to their Tenant handles."""

    def __init__(self) -> None:
        self._tenants: dict[str, Tenant] = {}
        self._lock = Lock()

    def register(self, db: str, database: Database) -> Tenant:
        tenant = Tenant(db=db, database=database)
        with self._lock:
            self._tenants[db] = tenant
        return tenant

    def get(self, db: str) -> Tenant:
        try:
            return self._tenants[db]
        except KeyError:
            raise UnknownTenantError(db) from None

    def __iter__(self) -> Iterator[Tenant]:
        return iter(list(self._tenants.values()))

    def __len__(self) -> int:
        return len(self._tenants)

    def close(self) -> None:
        for tenant in self:
            tenant.database.close()
