"""Entity dataclasses exchanged at the repository boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

PROJECT_STATUSES = ("Planning", "In Progress", "Completed", "On Hold")
APPOINTMENT_STATUSES = ("Pending", "Confirmed", "Completed", "Cancelled")
TICKET_STATUSES = ("Active", "In Progress", "Resolved", "Closed")
TICKET_PRIORITIES = ("Low", "Medium", "High", "Urgent")
JOB_STATUSES = ("Active", "Draft", "Closed")
APPLICATION_STATUSES = ("New", "Review", "Interview", "Shortlisted", "Rejected")
QUOTE_REQUEST_STATUSES = ("Pending", "Reviewed", "Accepted", "Rejected")


@dataclass
class Account:
    id: str = ""
    name: str = ""
    email: str = ""
    password_hash: Optional[str] = field(default=None, metadata={"attr": "password"})
    phone: Optional[str] = None
    avatar: Optional[str] = None
    is_verified: bool = False
    blocked: bool = False
    role: str = "user"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProgressProject:
    """A project summary tracked on a client's progress row."""

    id: str = ""
    name: str = ""
    status: str = "Planning"
    progress: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Invoice:
    id: str = ""
    title: str = ""
    amount: Optional[float] = None
    url: Optional[str] = None
    file_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ClientProgress:
    """Per-client row keyed by the account id."""

    id: str = ""
    projects: list[ProgressProject] = field(default_factory=list)
    invoices: list[Invoice] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProjectModule:
    id: str = ""
    name: str = ""
    progress: int = 0
    status: str = "Pending"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Project:
    id: str = ""
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    project_name: str = ""
    project_value: Optional[float] = None
    amount_paid: float = 0
    initial_payment_date: Optional[str] = None
    second_due_date: Optional[str] = None
    thumbnail: str = ""
    location: str = ""
    description: str = ""
    status: str = "Planning"
    progress: int = 0
    modules: list[ProjectModule] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Appointment:
    id: str = ""
    client_id: Optional[str] = None
    name: str = ""
    email: str = ""
    phone: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    purpose: str = ""
    status: str = "Pending"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class SupportTicket:
    id: str = ""
    client_id: Optional[str] = None
    name: str = ""
    email: str = ""
    phone: Optional[str] = None
    subject: str = ""
    description: str = ""
    priority: str = "Medium"
    status: str = "Active"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Job:
    id: str = ""
    title: str = ""
    department: Optional[str] = None
    location: Optional[str] = None
    type: Optional[str] = None
    description: str = ""
    status: str = "Active"
    applications_count: int = 0
    posted_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class JobApplication:
    id: str = ""
    job_id: str = ""
    name: str = ""
    email: str = ""
    phone: Optional[str] = None
    resume_url: Optional[str] = None
    status: str = "New"
    applied_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class QuoteRequest:
    id: str = ""
    client_id: Optional[str] = None
    client_name: str = ""
    client_email: str = ""
    client_phone: str = ""
    project_type: str = ""
    platform: Optional[str] = None
    payment_gateway: Optional[str] = None
    web_type: Optional[str] = None
    seo: Optional[str] = None
    business_type: Optional[str] = None
    description: str = ""
    calculated_quote: Optional[Any] = None
    status: str = "Pending"
    admin_notes: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


# Seeded into the pricing row the first time it is read. Amounts are INR.
DEFAULT_QUOTE_PRICING: dict[str, dict[str, int]] = {
    "basePrices": {
        "Mobile App": 50000,
        "Web Development": 30000,
        "AI Based App": 80000,
        "Business Apps": 40000,
    },
    "platform": {"Android": 0, "Android + iOS": 25000},
    "paymentGateway": {"Yes": 15000, "No": 0},
    "webType": {"Static": 0, "Dynamic": 20000},
    "seo": {"Yes": 10000, "No": 0},
    "businessType": {
        "Ecommerce Website": 25000,
        "Ecommerce App": 35000,
        "CRM Website": 20000,
        "Invoice Generator Website": 15000,
        "Invoice Generator App": 20000,
        "Appointment Booking Website": 15000,
        "Appointment Booking App": 20000,
    },
}
