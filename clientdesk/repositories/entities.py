"""Entity repositories: thin, typed wrappers over the document gateway."""
from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, Type, TypeVar

from clientdesk.core.security import hash_password
from clientdesk.domain.entities import (
    DEFAULT_QUOTE_PRICING,
    Account,
    Appointment,
    ClientProgress,
    Invoice,
    Job,
    JobApplication,
    ProgressProject,
    Project,
    ProjectModule,
    QuoteRequest,
    SupportTicket,
)

from .codec import Record, camel, decode, encode, encode_changes, stamp_created, utc_now_iso
from .errors import AlreadyExistsError, NotFoundError
from .gateway import DocumentGateway, mean_progress

E = TypeVar("E")


@dataclass(frozen=True)
class Tables:
    """Physical table names; one logical table per entity type."""

    accounts: str
    client_progress: str
    projects: str
    appointments: str
    support_tickets: str
    jobs: str
    job_applications: str
    quote_requests: str
    quote_pricing_config: str
    verification_codes: str

    @classmethod
    def with_prefix(cls, prefix: str = "exceptionz-") -> "Tables":
        return cls(
            accounts=f"{prefix}users",
            client_progress=f"{prefix}users-progress",
            projects=f"{prefix}projects",
            appointments=f"{prefix}appointments",
            support_tickets=f"{prefix}support-tickets",
            jobs=f"{prefix}jobs",
            job_applications=f"{prefix}job-applications",
            quote_requests=f"{prefix}quote-requests",
            quote_pricing_config=f"{prefix}quote-pricing",
            verification_codes=f"{prefix}verification-codes",
        )


def to_attrs(values: Mapping[str, Any] | Any, *, changes_only: bool = False) -> Record:
    """Accept a dataclass or a snake/camel keyed mapping and return record attributes.

    With ``changes_only`` a dataclass contributes only the fields set away
    from their defaults, which is what a merge into a stored entry wants.
    """
    if dataclasses.is_dataclass(values) and not isinstance(values, type):
        return encode_changes(values) if changes_only else encode(values)
    attrs: Record = {}
    for key, value in dict(values).items():
        if isinstance(value, list):
            value = [encode(item) if dataclasses.is_dataclass(item) else item for item in value]
        attrs[camel(key)] = value
    return attrs


class _Repository(Generic[E]):
    entity: Type[E]
    table_attr: str

    def __init__(self, gateway: DocumentGateway, tables: Tables):
        self.gateway = gateway
        self.tables = tables

    @property
    def table(self) -> str:
        return getattr(self.tables, self.table_attr)

    def _decode(self, record: Optional[Record]) -> Optional[E]:
        return decode(self.entity, record) if record is not None else None

    async def get(self, entity_id: str) -> Optional[E]:
        return self._decode(await self.gateway.get(self.table, entity_id))

    async def list(self) -> list[E]:
        return [decode(self.entity, row) for row in await self.gateway.scan(self.table)]

    async def update(self, entity_id: str, **changes: Any) -> E:
        record = await self.gateway.partial_update(self.table, entity_id, to_attrs(changes))
        return decode(self.entity, record)

    async def delete(self, entity_id: str) -> None:
        await self.gateway.delete(self.table, entity_id)


class _ClientOwnedRepository(_Repository[E]):
    async def list_for_client(self, client_id: str) -> list[E]:
        rows = await self.gateway.scan(self.table, {"clientId": client_id})
        return [decode(self.entity, row) for row in rows]


# -------------------------------------- accounts --------------------------------------
class AccountRepository(_Repository[Account]):
    entity = Account
    table_attr = "accounts"

    @staticmethod
    def _public(account: Optional[Account]) -> Optional[Account]:
        if account is not None:
            account.password_hash = None
        return account

    async def create(self, name: str, email: str, password: str, phone: Optional[str] = None) -> Account:
        normalized = (email or "").strip().lower()
        if await self.find_by_email(normalized):
            raise AlreadyExistsError(f"an account for {normalized} already exists", table=self.table)
        account = Account(
            name=name,
            email=normalized,
            password_hash=hash_password(password),
            phone=phone or None,
        )
        record = await self.gateway.insert_if_absent(self.table, stamp_created(encode(account)))
        return self._public(decode(Account, record))

    async def get(self, entity_id: str, *, with_password: bool = False) -> Optional[Account]:
        account = await super().get(entity_id)
        return account if with_password else self._public(account)

    async def list(self) -> list[Account]:
        return [self._public(account) for account in await super().list()]

    async def find_by_email(self, email: str) -> Optional[Account]:
        """Case-insensitive lookup; the returned account keeps its password hash."""
        normalized = (email or "").strip().lower()
        if not normalized:
            return None
        rows = await self.gateway.scan(self.table, {"email": normalized})
        return decode(Account, rows[0]) if rows else None

    async def search(self, term: str, limit: int = 10) -> list[Account]:
        query = (term or "").strip().lower()
        if len(query) < 2:
            return []

        def hit(row: Record) -> bool:
            name = str(row.get("name") or "").lower()
            phone = str(row.get("phone") or "")
            return query in name or query in phone

        rows = await self.gateway.scan(self.table, match=hit)
        return [self._public(decode(Account, row)) for row in rows[:limit]]

    async def update(self, entity_id: str, **changes: Any) -> Account:
        changes.pop("password", None)
        changes.pop("password_hash", None)
        return self._public(await super().update(entity_id, **changes))

    async def update_password(self, entity_id: str, new_password: str) -> Account:
        record = await self.gateway.partial_update(self.table, entity_id, {"password": hash_password(new_password)})
        return self._public(decode(Account, record))

    async def set_blocked(self, entity_id: str, blocked: bool) -> Account:
        return await self.update(entity_id, blocked=bool(blocked))


# -------------------------------------- client progress --------------------------------------
class ClientProgressRepository(_Repository[ClientProgress]):
    entity = ClientProgress
    table_attr = "client_progress"

    async def init(self, account_id: str) -> ClientProgress:
        """Create the progress row on first use; an existing row is returned untouched."""
        try:
            record = await self.gateway.insert_if_absent(
                self.table, {"id": account_id, "projects": [], "invoices": []}
            )
        except AlreadyExistsError:
            record = await self.gateway.get(self.table, account_id)
            if record is None:
                raise
        return decode(ClientProgress, record)

    async def upsert_project(self, account_id: str, project: ProgressProject | Mapping[str, Any]) -> ClientProgress:
        await self.init(account_id)
        sub_record = to_attrs(project, changes_only=True)
        record = await self.gateway.upsert_nested(self.table, account_id, "projects", sub_record)
        return decode(ClientProgress, record)

    async def add_invoice(self, account_id: str, invoice: Invoice | Mapping[str, Any]) -> ClientProgress:
        await self.init(account_id)
        sub_record = to_attrs(invoice, changes_only=True)
        record = await self.gateway.upsert_nested(self.table, account_id, "invoices", sub_record)
        return decode(ClientProgress, record)


# -------------------------------------- projects --------------------------------------
class ProjectRepository(_ClientOwnedRepository[Project]):
    entity = Project
    table_attr = "projects"

    async def create(self, project: Project | Mapping[str, Any]) -> Project:
        record = to_attrs(project)
        record.pop("id", None)
        record["modules"] = [stamp_created(dict(module)) for module in record.get("modules") or []]
        record["progress"] = mean_progress(record["modules"])
        record.setdefault("status", "Planning")
        record = await self.gateway.insert_if_absent(self.table, stamp_created(record))
        return decode(Project, record)

    async def upsert_module(self, project_id: str, module: ProjectModule | Mapping[str, Any]) -> Project:
        record = await self.gateway.upsert_nested(
            self.table,
            project_id,
            "modules",
            to_attrs(module, changes_only=True),
            aggregate_field="progress",
            aggregate_fn=mean_progress,
        )
        return decode(Project, record)

    async def update_module(self, project_id: str, module_id: str, **changes: Any) -> Project:
        attrs = to_attrs(changes)
        attrs["id"] = module_id
        record = await self.gateway.upsert_nested(
            self.table,
            project_id,
            "modules",
            attrs,
            aggregate_field="progress",
            aggregate_fn=mean_progress,
            must_exist=True,
        )
        return decode(Project, record)


# -------------------------------------- appointments / tickets --------------------------------------
class AppointmentRepository(_ClientOwnedRepository[Appointment]):
    entity = Appointment
    table_attr = "appointments"

    async def create(self, appointment: Appointment | Mapping[str, Any]) -> Appointment:
        record = to_attrs(appointment)
        record.pop("id", None)
        record.setdefault("status", "Pending")
        return decode(Appointment, await self.gateway.insert_if_absent(self.table, stamp_created(record)))


class SupportTicketRepository(_ClientOwnedRepository[SupportTicket]):
    entity = SupportTicket
    table_attr = "support_tickets"

    async def create(self, ticket: SupportTicket | Mapping[str, Any]) -> SupportTicket:
        record = to_attrs(ticket)
        record.pop("id", None)
        record.setdefault("priority", "Medium")
        record.setdefault("status", "Active")
        return decode(SupportTicket, await self.gateway.insert_if_absent(self.table, stamp_created(record)))


# -------------------------------------- careers --------------------------------------
class JobRepository(_Repository[Job]):
    entity = Job
    table_attr = "jobs"

    async def create(self, job: Job | Mapping[str, Any]) -> Job:
        record = to_attrs(job)
        record.pop("id", None)
        record.setdefault("status", "Active")
        record["applicationsCount"] = 0
        record["postedAt"] = utc_now_iso()
        return decode(Job, await self.gateway.insert_if_absent(self.table, stamp_created(record)))

    async def increment_applications(self, job_id: str) -> Job:
        return decode(Job, await self.gateway.increment(self.table, job_id, "applicationsCount", 1))


class JobApplicationRepository(_Repository[JobApplication]):
    entity = JobApplication
    table_attr = "job_applications"

    def __init__(self, gateway: DocumentGateway, tables: Tables, jobs: Optional[JobRepository] = None):
        super().__init__(gateway, tables)
        self.jobs = jobs or JobRepository(gateway, tables)

    async def create(self, application: JobApplication | Mapping[str, Any]) -> JobApplication:
        """Store the application and bump the job's counter."""
        record = to_attrs(application)
        record.pop("id", None)
        job_id = record.get("jobId")
        if not job_id or await self.jobs.get(job_id) is None:
            raise NotFoundError(f"job {job_id} not found", table=self.jobs.table, key=job_id)
        record["status"] = "New"
        record["appliedAt"] = utc_now_iso()
        created = await self.gateway.insert_if_absent(self.table, stamp_created(record))
        await self.jobs.increment_applications(job_id)
        return decode(JobApplication, created)

    async def list_for_job(self, job_id: str) -> list[JobApplication]:
        return [decode(JobApplication, row) for row in await self.gateway.scan(self.table, {"jobId": job_id})]

    async def update_status(self, application_id: str, status: str) -> JobApplication:
        return await self.update(application_id, status=status)


# -------------------------------------- quote requests --------------------------------------
class QuoteRequestRepository(_ClientOwnedRepository[QuoteRequest]):
    """Request-queue style listings come back newest first."""

    entity = QuoteRequest
    table_attr = "quote_requests"

    async def create(self, request: QuoteRequest | Mapping[str, Any]) -> QuoteRequest:
        record = to_attrs(request)
        record.pop("id", None)
        record["status"] = "Pending"
        record.setdefault("adminNotes", "")
        return decode(QuoteRequest, await self.gateway.insert_if_absent(self.table, stamp_created(record)))

    async def list(self) -> list[QuoteRequest]:
        rows = await self.gateway.scan(self.table, sort_by="createdAt", descending=True)
        return [decode(QuoteRequest, row) for row in rows]

    async def list_for_client(self, client_id: str) -> list[QuoteRequest]:
        rows = await self.gateway.scan(self.table, {"clientId": client_id}, sort_by="createdAt", descending=True)
        return [decode(QuoteRequest, row) for row in rows]


class QuotePricingRepository:
    """The single ``global-pricing`` row; defaults are seeded on first read."""

    ROW_ID = "global-pricing"

    def __init__(self, gateway: DocumentGateway, tables: Tables):
        self.gateway = gateway
        self.tables = tables

    @property
    def table(self) -> str:
        return self.tables.quote_pricing_config

    async def get(self) -> dict[str, Any]:
        record = await self.gateway.get(self.table, self.ROW_ID)
        if record is None:
            try:
                record = await self.gateway.insert_if_absent(
                    self.table, {"id": self.ROW_ID, "pricing": copy.deepcopy(DEFAULT_QUOTE_PRICING)}
                )
            except AlreadyExistsError:
                record = await self.gateway.get(self.table, self.ROW_ID)
        return (record or {}).get("pricing") or copy.deepcopy(DEFAULT_QUOTE_PRICING)

    async def save(self, pricing: Mapping[str, Any]) -> dict[str, Any]:
        changes = {"pricing": copy.deepcopy(dict(pricing))}
        try:
            record = await self.gateway.partial_update(self.table, self.ROW_ID, changes)
        except NotFoundError:
            record = await self.gateway.insert_if_absent(self.table, {"id": self.ROW_ID, **changes})
        return record["pricing"]
