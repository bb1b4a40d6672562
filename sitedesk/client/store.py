"""
In-memory collection of submissions and their management records.

Reads go through ``fetch_all`` which retries transient failures; every
mutation is sent once and, on success, patched into the collection.
"""
import logging
import uuid
from typing import List, Optional

from .cache import SnapshotCache
from .result import Ok, ErrorKind, fail, log_failure
from .retry import retry
from .schemas import (
    Submission, ManagementRecord, NewSubmission, SubmissionChanges, NewRecord, RecordChanges,
    InvalidRequest, SUBMISSION_STATUSES,
)
from .session import IdentityManager
from .transport import HttpTransport

logger = logging.getLogger(__name__)


def join_records(websites, records):
    """Attach each record to its parent submission by website id"""
    by_website = {}
    for item in records:
        record = ManagementRecord.from_api(item)
        by_website.setdefault(record.website_id, []).append(record)
    return [Submission.from_api(item, records=by_website.get(str(item['id']), [])) for item in websites]


class WebsiteStore:
    """
    State store behind the dashboards.

    ``error`` holds the last recoverable read failure and ``needs_reauth`` is
    raised when the server rejected the session; in both cases previously
    loaded data is kept.
    """

    def __init__(self, transport: HttpTransport, identity: Optional[IdentityManager] = None,
                 snapshot: Optional[SnapshotCache] = None):
        self.transport = transport
        self.identity = identity
        self.snapshot = snapshot
        self.websites: List[Submission] = []
        self.loading = False
        self.error = None
        self.needs_reauth = False

    @property
    def scope(self):
        return self.identity.scope if self.identity else 'anonymous'

    def _invalid(self, action, message):
        return log_failure(logger, action, fail(ErrorKind.VALIDATION, message))

    def _failed(self, action, result):
        if result.error.kind == ErrorKind.AUTH and result.error.status_code == 401:
            self.needs_reauth = True
        return log_failure(logger, action, result)

    def find(self, website_id) -> Optional[Submission]:
        website_id = str(website_id)
        for website in self.websites:
            if website.id == website_id:
                return website
        return None

    # Reads

    @retry()
    def _load(self):
        websites = self.transport.get('websites/')
        if not websites:
            return websites
        records = self.transport.get('records/')
        if not records:
            return records
        return Ok((websites.value, records.value))

    def fetch_all(self):
        """Reload every visible submission with its records"""
        self.loading = True
        try:
            result = self._load()
        finally:
            self.loading = False

        if result:
            websites, records = result.value
            self.websites = join_records(websites, records)
            self.error = None
            self.needs_reauth = False
            if self.snapshot is not None:
                self.snapshot.save('websites', self.scope, websites)
                self.snapshot.save('records', self.scope, records)
            return Ok(self.websites)

        self.error = result.error
        if result.error.kind == ErrorKind.AUTH:
            self.needs_reauth = True
        elif self.snapshot is not None:
            websites = self.snapshot.load('websites', self.scope)
            records = self.snapshot.load('records', self.scope)
            if websites is not None:
                self.websites = join_records(websites, records or [])
        return log_failure(logger, 'Fetch websites', result)

    def get_for_user(self, user_id) -> List[Submission]:
        return [website for website in self.websites if website.user_id == user_id]

    def get_all(self) -> List[Submission]:
        return list(self.websites)

    # Submissions

    def add(self, submission):
        """Submit for review; the id is generated here so the insert is identifiable"""
        if self.identity is None or not self.identity.is_authenticated:
            return log_failure(logger, 'Add submission', fail(ErrorKind.AUTH, 'You must be signed in to submit'))
        try:
            submission = NewSubmission.from_mapping(submission)
        except InvalidRequest as e:
            return self._invalid('Add submission', str(e))

        payload = submission.to_payload()
        payload['id'] = str(uuid.uuid4())
        result = self.transport.post('websites/', payload)
        if not result:
            return self._failed(f"Add submission {submission.name!r}", result)

        logger.info(f"Submitted {submission.type} {payload['id']} for review")
        self.fetch_all()
        return Ok(Submission.from_api(result.value))

    def update(self, website_id, changes):
        try:
            changes = SubmissionChanges.from_mapping(changes)
        except InvalidRequest as e:
            return self._invalid('Update submission', str(e))
        payload = changes.to_payload()
        if not payload:
            return self._invalid('Update submission', 'Nothing to update')

        result = self.transport.patch(f'websites/{website_id}/', payload)
        if not result:
            return self._failed(f"Update submission {website_id}", result)
        updated = Submission.from_api(result.value)
        self.websites = [updated if website.id == updated.id else website for website in self.websites]
        return Ok(updated)

    def delete(self, website_id):
        result = self.transport.delete(f'websites/{website_id}/')
        if not result:
            return self._failed(f"Delete submission {website_id}", result)
        self.websites = [website for website in self.websites if website.id != str(website_id)]
        return Ok(None)

    def set_status(self, website_id, status, rejection_reason=None):
        """Approve or reject a pending submission"""
        if status not in SUBMISSION_STATUSES:
            return self._invalid('Set status', f"Status must be one of: {', '.join(SUBMISSION_STATUSES)}")
        payload = {'status': status}
        if rejection_reason is not None:
            payload['rejection_reason'] = rejection_reason

        result = self.transport.post(f'websites/{website_id}/status/', payload)
        if not result:
            return self._failed(f"Set status of {website_id} to {status}", result)

        changed = Submission.from_api(result.value, records=[])
        website = self.find(website_id)
        if website is not None:
            website.status = changed.status
            website.rejection_reason = changed.rejection_reason
            website.updated_at = changed.updated_at
            changed.management_records = website.management_records
        return Ok(changed)

    # Management records

    def add_record(self, website_id, record):
        website = self.find(website_id)
        if website is not None and website.status != 'approved':
            return self._invalid('Add record', f"Records can only be added to approved submissions (status is {website.status})")
        try:
            record = NewRecord.from_mapping(record)
        except InvalidRequest as e:
            return self._invalid('Add record', str(e))

        result = self.transport.post(f'websites/{website_id}/records/', record.to_payload())
        if not result:
            return self._failed(f"Add record to {website_id}", result)
        created = ManagementRecord.from_api(result.value)
        if website is not None:
            website.management_records.append(created)
        return Ok(created)

    def update_record(self, website_id, record_id, changes):
        try:
            changes = RecordChanges.from_mapping(changes)
        except InvalidRequest as e:
            return self._invalid('Update record', str(e))
        payload = changes.to_payload()
        if not payload:
            return self._invalid('Update record', 'Nothing to update')

        result = self.transport.patch(f'websites/{website_id}/records/{record_id}/', payload)
        if not result:
            return self._failed(f"Update record {record_id}", result)
        updated = ManagementRecord.from_api(result.value)
        website = self.find(website_id)
        if website is not None:
            website.management_records = [
                updated if record.id == updated.id else record for record in website.management_records
            ]
        return Ok(updated)

    def delete_record(self, website_id, record_id):
        result = self.transport.delete(f'websites/{website_id}/records/{record_id}/')
        if not result:
            return self._failed(f"Delete record {record_id}", result)
        website = self.find(website_id)
        if website is not None:
            website.management_records = [
                record for record in website.management_records if record.id != str(record_id)
            ]
        return Ok(None)

    def clear_records(self, website_id):
        """Remove every record of a submission; clearing an empty list succeeds"""
        result = self.transport.delete(f'websites/{website_id}/records/')
        if not result:
            return self._failed(f"Clear records of {website_id}", result)
        website = self.find(website_id)
        if website is not None:
            website.management_records = []
        return Ok(None)
