"""
Client-side shapes of API objects and of the requests sent to the API.

Request types are built with ``from_mapping`` which rejects keys the type
does not declare, so a typo in a patch fails locally instead of being sent.
"""
import datetime
from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.utils.dateparse import parse_date, parse_datetime

from sitedesk.core.validators import is_valid_phone, normalize_identifier, PHONE_ERROR
from sitedesk.websites.validators import (
    format_url, coerce_amount, amount_in_range, AMOUNT_LIMIT_ERROR, DOCUMENT_TYPES, NO_URL,
)

ROLES = ('user', 'admin')
USER_STATUSES = ('active', 'inactive')
RANKINGS = ('customer', 'agent', 'master', 'senior')
SUBMISSION_TYPES = ('website', 'app', 'other') + DOCUMENT_TYPES
SUBMISSION_STATUSES = ('pending', 'approved', 'rejected')
TASK_STATUSES = ('pending', 'in-progress', 'completed')

AMOUNT_FIELDS = ('credit', 'profit', 'gross_profit', 'service_fee', 'net_profit')


class InvalidRequest(ValueError):
    pass


def to_date(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime.date):
        return value
    parsed = parse_date(str(value))
    if parsed is None:
        raise InvalidRequest(f"Invalid date: {value!r}")
    return parsed


def encode(value):
    """JSON-ready form of a request value"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, list):
        return [encode(item) for item in value]
    if hasattr(value, 'to_payload'):
        return value.to_payload()
    return value


def check_choice(name, value, choices):
    if value is not None and value not in choices:
        raise InvalidRequest(f"{name} must be one of: {', '.join(choices)}")


def clean_amounts(request):
    """Coerce the amount fields a record request carries"""
    for name in AMOUNT_FIELDS:
        value = getattr(request, name)
        if value is None:
            continue
        amount = coerce_amount(value)
        if not amount_in_range(amount):
            raise InvalidRequest(f"{name}: {AMOUNT_LIMIT_ERROR}")
        setattr(request, name, amount)


class RequestMixin:
    """Strict construction and payload encoding for request dataclasses"""

    @classmethod
    def from_mapping(cls, mapping):
        if isinstance(mapping, cls):
            return mapping
        if not isinstance(mapping, dict):
            raise InvalidRequest(f"{cls.__name__} expects a mapping, got {type(mapping).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise InvalidRequest(f"Unknown field(s) for {cls.__name__}: {', '.join(unknown)}")
        try:
            instance = cls(**mapping)
        except TypeError as e:
            raise InvalidRequest(str(e))
        instance.clean()
        return instance

    def clean(self):
        pass

    def to_payload(self) -> Dict[str, Any]:
        return {f.name: encode(getattr(self, f.name)) for f in fields(self) if getattr(self, f.name) is not None}


# Objects as returned by the API

@dataclass
class Profile:
    id: int
    email: str
    name: str = ''
    role: str = 'user'
    status: str = 'active'
    ranking: str = 'customer'
    phone: Optional[str] = None
    created_at: Optional[datetime.datetime] = None

    @property
    def is_admin(self):
        return self.role == 'admin'

    @classmethod
    def from_api(cls, data):
        return cls(
            id=data['id'],
            email=data['email'],
            name=data.get('name') or '',
            role=data.get('role', 'user'),
            status=data.get('status', 'active'),
            ranking=data.get('ranking', 'customer'),
            phone=data.get('phone'),
            created_at=parse_datetime(data['created_at']) if data.get('created_at') else None,
        )


@dataclass
class Task(RequestMixin):
    type: str
    description: str = ''
    status: str = 'pending'

    def clean(self):
        if not self.type:
            raise InvalidRequest('Task type is required')
        check_choice('Task status', self.status, TASK_STATUSES)


@dataclass
class SubmissionFile(RequestMixin):
    name: str
    url: str
    size: Optional[int] = None
    type: Optional[str] = None


@dataclass
class ManagementRecord:
    id: str
    website_id: str
    day: str = ''
    credit: Decimal = Decimal('0')
    profit: Decimal = Decimal('0')
    gross_profit: Decimal = Decimal('0')
    service_fee: Decimal = Decimal('0')
    net_profit: Decimal = Decimal('0')
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    tasks: List[Task] = field(default_factory=list)
    created_at: Optional[datetime.datetime] = None

    @classmethod
    def from_api(cls, data):
        return cls(
            id=str(data['id']),
            website_id=str(data['website_id']),
            day=data.get('day') or '',
            start_date=to_date(data.get('start_date')),
            end_date=to_date(data.get('end_date')),
            tasks=[Task(**task) for task in data.get('tasks') or []],
            created_at=parse_datetime(data['created_at']) if data.get('created_at') else None,
            **{name: coerce_amount(data.get(name)) for name in AMOUNT_FIELDS},
        )


@dataclass
class Submission:
    id: str
    user_id: int
    name: str
    type: str = 'website'
    url: str = NO_URL
    user_email: str = ''
    login_url: str = ''
    username: str = ''
    password: str = ''
    files: List[SubmissionFile] = field(default_factory=list)
    status: str = 'pending'
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None
    management_records: List[ManagementRecord] = field(default_factory=list)

    @classmethod
    def from_api(cls, data, records=None):
        if records is None:
            records = [ManagementRecord.from_api(item) for item in data.get('management_records') or []]
        return cls(
            id=str(data['id']),
            user_id=data['user_id'],
            user_email=data.get('user_email') or '',
            name=data['name'],
            type=data.get('type', 'website'),
            url=data.get('url') or NO_URL,
            login_url=data.get('login_url') or '',
            username=data.get('username') or '',
            password=data.get('password') or '',
            files=[SubmissionFile(**item) for item in data.get('files') or []],
            status=data.get('status', 'pending'),
            rejection_reason=data.get('rejection_reason'),
            created_at=parse_datetime(data['created_at']) if data.get('created_at') else None,
            updated_at=parse_datetime(data['updated_at']) if data.get('updated_at') else None,
            management_records=records,
        )


# Requests sent to the API

@dataclass
class UserChanges(RequestMixin):
    """Admin edit of a profile; unset fields are left untouched"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    ranking: Optional[str] = None

    def clean(self):
        if self.email is not None:
            self.email = normalize_identifier(self.email)
        if self.phone is not None and not is_valid_phone(self.phone):
            raise InvalidRequest(PHONE_ERROR)
        check_choice('Role', self.role, ROLES)
        check_choice('Status', self.status, USER_STATUSES)
        check_choice('Ranking', self.ranking, RANKINGS)


@dataclass
class NewSubmission(RequestMixin):
    name: str
    type: str = 'website'
    url: str = ''
    login_url: str = ''
    username: str = ''
    password: str = ''
    files: List[SubmissionFile] = field(default_factory=list)

    def clean(self):
        if not (self.name or '').strip():
            raise InvalidRequest('Name is required')
        check_choice('Type', self.type, SUBMISSION_TYPES)
        self.url = format_url(self.url, self.type)
        if self.url == NO_URL and self.type not in DOCUMENT_TYPES:
            raise InvalidRequest('A URL is required for this submission type')
        self.files = [SubmissionFile.from_mapping(item) for item in self.files or []]


@dataclass
class SubmissionChanges(RequestMixin):
    """Edit of the user-supplied fields of a submission"""
    name: Optional[str] = None
    type: Optional[str] = None
    url: Optional[str] = None
    login_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    files: Optional[List[SubmissionFile]] = None

    def clean(self):
        if self.name is not None and not self.name.strip():
            raise InvalidRequest('Name cannot be empty')
        check_choice('Type', self.type, SUBMISSION_TYPES)
        if self.url is not None:
            self.url = format_url(self.url, self.type or 'website')
        if self.files is not None:
            self.files = [SubmissionFile.from_mapping(item) for item in self.files]


@dataclass
class NewRecord(RequestMixin):
    """
    A management record to add to an approved submission.

    Amounts accept numbers or numeric strings and are rounded half-up to
    cents; anything unparseable counts as 0. Without an explicit
    ``net_profit`` the server derives it as ``gross_profit - service_fee``.
    """
    day: str = ''
    credit: Any = Decimal('0')
    profit: Any = Decimal('0')
    gross_profit: Any = Decimal('0')
    service_fee: Any = Decimal('0')
    net_profit: Any = None
    start_date: Any = None
    end_date: Any = None
    tasks: List[Task] = field(default_factory=list)

    def clean(self):
        self.day = str(self.day or '')
        clean_amounts(self)
        self.start_date = to_date(self.start_date)
        self.end_date = to_date(self.end_date)
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise InvalidRequest('End date cannot be before start date')
        self.tasks = [Task.from_mapping(item) for item in self.tasks or []]


@dataclass
class RecordChanges(RequestMixin):
    day: Optional[str] = None
    credit: Any = None
    profit: Any = None
    gross_profit: Any = None
    service_fee: Any = None
    net_profit: Any = None
    start_date: Any = None
    end_date: Any = None
    tasks: Optional[List[Task]] = None

    def clean(self):
        clean_amounts(self)
        self.start_date = to_date(self.start_date)
        self.end_date = to_date(self.end_date)
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise InvalidRequest('End date cannot be before start date')
        if self.tasks is not None:
            self.tasks = [Task.from_mapping(item) for item in self.tasks]
