"""Dependency injection container for the Tax Event Ledger.

Provides centralized dependency management using a simple container pattern.
Services are built lazily on first access and cached for reuse, and any of
them can be replaced in tests by constructing a Container with custom
settings or by assigning the cached attribute before first use.

Usage:
    from tax_event_ledger.container import get_container

    container = get_container()
    tenant = container.tenant
    container.reversal_service.delete_payment(tenant, payment)
"""

from functools import cached_property, lru_cache
from typing import TYPE_CHECKING

from tax_event_ledger.config import (
    DatabaseType,
    Settings,
    TaskRunnerType,
    get_settings,
)
from tax_event_ledger.logging_config import get_logger

if TYPE_CHECKING:
    from tax_event_ledger.repositories.interfaces import Database
    from tax_event_ledger.repositories.tenancy import Tenant, TenantRegistry
    from tax_event_ledger.services.accrual import AccrualEventRecorder
    from tax_event_ledger.services.cash import CashEventRecorder
    from tax_event_ledger.services.cash_period import CashPeriodRecorder
    from tax_event_ledger.services.interfaces import TaskRunner, TaxBreakdownCalculator
    from tax_event_ledger.services.payment_reversal import PaymentReversalService
    from tax_event_ledger.services.periods import PeriodResolver
    from tax_event_ledger.services.snapshots import TaxSnapshotBuilder
    from tax_event_ledger.services.tax_summary import TaxSummaryService

logger = get_logger(__name__)


class Container:
    """Dependency injection container.

    The container can be configured with custom settings for testing:

        test_settings = Settings(sqlite_path=":memory:")
        container = Container(settings=test_settings)
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        logger.debug(
            "container_created",
            database_type=self._settings.database_type.value,
            environment=self._settings.environment.value,
            task_runner=self._settings.task_runner.value,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def database(self) -> "Database":
        """Database of the tenant served by this process, initialized on first access."""
        if self._settings.database_type == DatabaseType.POSTGRES:
            return self._create_postgres_database()
        return self._create_sqlite_database()

    def _create_sqlite_database(self) -> "Database":
        from tax_event_ledger.repositories.sqlite import SQLiteDatabase

        db_path = str(self._settings.sqlite_path)
        logger.info("initializing_sqlite_database", path=db_path)

        db = SQLiteDatabase(db_path)
        db.initialize()
        return db

    def _create_postgres_database(self) -> "Database":
        from tax_event_ledger.repositories.postgres import PostgresDatabase

        url = self._settings.database_url
        if not url:
            raise ValueError("database_url must be set when database_type is postgres")

        logger.info(
            "initializing_postgres_database",
            # The URL may carry credentials
            host=url.split("@")[-1].split("/")[0] if "@" in url else "localhost",
        )

        db = PostgresDatabase(url)
        db.initialize()
        return db

    @cached_property
    def tenants(self) -> "TenantRegistry":
        from tax_event_ledger.repositories.tenancy import TenantRegistry

        registry = TenantRegistry()
        registry.register(self._settings.tenant_name, self.database)
        return registry

    @property
    def tenant(self) -> "Tenant":
        """The tenant handle for the configured tenant database."""
        return self.tenants.get(self._settings.tenant_name)

    @cached_property
    def periods(self) -> "PeriodResolver":
        from tax_event_ledger.services.periods import PeriodResolver

        return PeriodResolver(lookback_hours=self._settings.close_of_day_lookback_hours)

    @cached_property
    def tax_calculator(self) -> "TaxBreakdownCalculator":
        from tax_event_ledger.services.tax_calculator import InvoiceTaxCalculator

        return InvoiceTaxCalculator()

    @cached_property
    def snapshot_builder(self) -> "TaxSnapshotBuilder":
        from tax_event_ledger.services.snapshots import TaxSnapshotBuilder

        return TaxSnapshotBuilder(self.tax_calculator)

    @cached_property
    def task_runner(self) -> "TaskRunner":
        from tax_event_ledger.services.tasks import (
            InlineTaskRunner,
            ThreadPoolTaskRunner,
        )

        if self._settings.task_runner == TaskRunnerType.THREADED:
            return ThreadPoolTaskRunner(workers=self._settings.task_workers)
        return InlineTaskRunner()

    @cached_property
    def accrual_recorder(self) -> "AccrualEventRecorder":
        from tax_event_ledger.services.accrual import AccrualEventRecorder

        return AccrualEventRecorder(self.snapshot_builder, self.periods)

    @cached_property
    def cash_recorder(self) -> "CashEventRecorder":
        from tax_event_ledger.services.cash import CashEventRecorder

        return CashEventRecorder(
            self.snapshot_builder,
            self.periods,
            self.tenants,
            self.task_runner,
            release_after=self._settings.cash_event_release_after,
            expire_after=self._settings.cash_event_expire_after,
            tries=self._settings.cash_event_tries,
        )

    @cached_property
    def cash_period_recorder(self) -> "CashPeriodRecorder":
        from tax_event_ledger.services.cash_period import CashPeriodRecorder

        return CashPeriodRecorder(self.snapshot_builder, self.periods)

    @cached_property
    def reversal_service(self) -> "PaymentReversalService":
        from tax_event_ledger.services.payment_reversal import PaymentReversalService

        return PaymentReversalService(
            self.cash_recorder,
            attempts=self._settings.reversal_attempts,
            backoff_seconds=self._settings.reversal_backoff_seconds,
            status_tolerance=self._settings.status_tolerance,
        )

    @cached_property
    def tax_summary_service(self) -> "TaxSummaryService":
        from tax_event_ledger.services.tax_summary import TaxSummaryService

        return TaxSummaryService(
            self.accrual_recorder, self.cash_period_recorder, self.periods
        )

    def close(self) -> None:
        """Close all resources held by the container."""
        if "task_runner" in self.__dict__:
            self.task_runner.shutdown(wait=True)
        if "tenants" in self.__dict__:
            logger.info("closing_database_connections", tenants=len(self.tenants))
            self.tenants.close()
        elif "database" in self.__dict__:
            self.database.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


_container: Container | None = None


@lru_cache
def get_container() -> Container:
    """Get the global container singleton.

    For testing, create a Container directly with custom settings instead
    of using this function.
    """
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Reset the global container."""
    global _container
    if _container is not None:
        _container.close()
        _container = None
    get_container.cache_clear()


# FastAPI dependency functions
def get_tenant() -> "Tenant":
    """FastAPI dependency for the served tenant."""
    return get_container().tenant
