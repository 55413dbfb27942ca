from portal.repositories.accounts import InMemoryAccountsRepository, PostgresAccountsRepository
from portal.repositories.applications import InMemoryApplicationsRepository, PostgresApplicationsRepository
from portal.repositories.services import InMemoryServicesRepository, PostgresServicesRepository
from portal.repositories.status_events import InMemoryStatusEventsRepository, PostgresStatusEventsRepository

__all__ = [
    "InMemoryAccountsRepository",
    "PostgresAccountsRepository",
    "InMemoryApplicationsRepository",
    "PostgresApplicationsRepository",
    "InMemoryServicesRepository",
    "PostgresServicesRepository",
    "InMemoryStatusEventsRepository",
    "PostgresStatusEventsRepository",
]
