"""
Identity/session manager: who is signed in, and user administration.
"""
import logging
from typing import Optional

from sitedesk.core.validators import normalize_identifier, is_valid_phone, PHONE_ERROR
from .cache import SnapshotCache
from .result import Ok, ErrorKind, fail, log_failure
from .retry import retry
from .schemas import Profile, UserChanges, InvalidRequest, USER_STATUSES
from .transport import HttpTransport

logger = logging.getLogger(__name__)


class SessionState:
    UNAUTHENTICATED = 'unauthenticated'
    AUTHENTICATING = 'authenticating'
    AUTHENTICATED = 'authenticated'


class IdentityManager:
    """
    Session state machine over the auth endpoints.

    ``state`` moves unauthenticated -> authenticating -> authenticated and
    ``role`` holds the signed-in profile's role. ``loading`` is true while a
    sign-in or session restore is in flight.
    """

    def __init__(self, transport: HttpTransport, snapshot: Optional[SnapshotCache] = None):
        self.transport = transport
        self.snapshot = snapshot
        self.state = SessionState.UNAUTHENTICATED
        self.user: Optional[Profile] = None
        self.loading = False

    @property
    def is_authenticated(self):
        return self.state == SessionState.AUTHENTICATED

    @property
    def role(self):
        return self.user.role if self.user else None

    @property
    def is_admin(self):
        return self.is_authenticated and self.user.is_admin

    @property
    def scope(self):
        """Snapshot namespace of the signed-in profile"""
        return f"user-{self.user.id}" if self.user else 'anonymous'

    def _start(self):
        self.state = SessionState.AUTHENTICATING
        self.loading = True

    def _establish(self, data):
        self.transport.set_tokens(data['access'], data['refresh'])
        self.user = Profile.from_api(data['user'])
        self.state = SessionState.AUTHENTICATED
        logger.info(f"Signed in as {self.user.email} ({self.user.role})")

    def _drop(self):
        self.transport.clear_tokens()
        self.user = None
        self.state = SessionState.UNAUTHENTICATED

    def _failed(self, action, result):
        # An expired session is over; a 403 only means this call was not allowed
        if result.error.kind == ErrorKind.AUTH and result.error.status_code == 401 and self.is_authenticated:
            logger.info("Session expired, signing out")
            self._drop()
        return log_failure(logger, action, result)

    def _require_admin(self, action):
        if not self.is_admin:
            return log_failure(logger, action, fail(ErrorKind.AUTH, 'Admin privileges required'))
        return None

    def login(self, identifier, password, as_admin=False):
        """Sign in; identifiers without "@" get the platform email domain"""
        email = normalize_identifier(identifier)
        if not email or not password:
            return log_failure(logger, 'Login', fail(ErrorKind.VALIDATION, 'Email and password are required'))

        self._start()
        try:
            result = self.transport.post(
                'auth/login/', {'email': email, 'password': password, 'as_admin': as_admin}, auth=False
            )
            if result:
                self._establish(result.value)
                return Ok(self.user)
            self._drop()
            return log_failure(logger, f"Login for {email}", result)
        finally:
            self.loading = False

    def signup(self, email, password, phone, name, as_admin=False):
        """Create an account and sign in to it"""
        if not is_valid_phone(phone):
            return log_failure(logger, 'Signup', fail(ErrorKind.VALIDATION, PHONE_ERROR))
        email = normalize_identifier(email)

        self._start()
        try:
            result = self.transport.post('auth/signup/', {
                'email': email,
                'password': password,
                'phone': phone,
                'name': name,
                'as_admin': as_admin,
            }, auth=False)
            if result:
                self._establish(result.value)
                return Ok(self.user)
            self._drop()
            return log_failure(logger, f"Signup for {email}", result)
        finally:
            self.loading = False

    def restore(self, access, refresh):
        """Resume a stored session by asking the server who the tokens belong to"""
        self._start()
        try:
            self.transport.set_tokens(access, refresh)
            result = self.transport.get('auth/me/')
            if result:
                self.user = Profile.from_api(result.value)
                self.state = SessionState.AUTHENTICATED
                return Ok(self.user)
            self._drop()
            return log_failure(logger, 'Session restore', result)
        finally:
            self.loading = False

    def logout(self):
        """Always ends the local session, whatever the server says"""
        refresh = self.transport.refresh_token
        if refresh:
            result = self.transport.post('auth/logout/', {'refresh': refresh}, auth=False)
            if not result:
                log_failure(logger, 'Logout', result)
        if self.snapshot is not None:
            self.snapshot.clear(self.scope)
        self._drop()
        return Ok(None)

    def change_password(self, current_password, new_password):
        if not self.is_authenticated:
            return log_failure(logger, 'Change password', fail(ErrorKind.AUTH, 'You must be signed in'))
        result = self.transport.post('auth/change-password/', {
            'current_password': current_password,
            'new_password': new_password,
        })
        if not result:
            return self._failed('Change password', result)
        return Ok(None)

    def check_admin_exists(self):
        result = self.transport.get('auth/admin-exists/', auth=False)
        if not result:
            return log_failure(logger, 'Admin check', result)
        return Ok(bool(result.value.get('admin_exists')))

    # User administration

    @retry()
    def _load_users(self):
        return self.transport.get('users/')

    def get_all_users(self):
        """All profiles, newest first; falls back to the last snapshot when offline"""
        denied = self._require_admin('List users')
        if denied is not None:
            return denied

        result = self._load_users()
        if result:
            if self.snapshot is not None:
                self.snapshot.save('users', self.scope, result.value)
            return Ok([Profile.from_api(item) for item in result.value])

        if result.error.kind == ErrorKind.NETWORK and self.snapshot is not None:
            cached = self.snapshot.load('users', self.scope)
            if cached is not None:
                log_failure(logger, 'List users (serving snapshot)', result)
                return Ok([Profile.from_api(item) for item in cached])
        return self._failed('List users', result)

    def update_user(self, user_id, changes, new_password=None):
        denied = self._require_admin('Update user')
        if denied is not None:
            return denied
        try:
            changes = UserChanges.from_mapping(changes)
        except InvalidRequest as e:
            return log_failure(logger, 'Update user', fail(ErrorKind.VALIDATION, str(e)))

        payload = changes.to_payload()
        if new_password:
            payload['new_password'] = new_password
        if not payload:
            return log_failure(logger, 'Update user', fail(ErrorKind.VALIDATION, 'Nothing to update'))

        result = self.transport.patch(f'users/{user_id}/', payload)
        if not result:
            return self._failed(f"Update user {user_id}", result)
        profile = Profile.from_api(result.value)
        if self.user and profile.id == self.user.id:
            self.user = profile
        return Ok(profile)

    def update_user_status(self, user_id, status):
        denied = self._require_admin('Update user status')
        if denied is not None:
            return denied
        if status not in USER_STATUSES:
            return log_failure(logger, 'Update user status', fail(
                ErrorKind.VALIDATION, f"Status must be one of: {', '.join(USER_STATUSES)}"
            ))
        result = self.transport.patch(f'users/{user_id}/status/', {'status': status})
        if not result:
            return self._failed(f"Update status of user {user_id}", result)
        return Ok(Profile.from_api(result.value))

    def delete_user(self, user_id):
        denied = self._require_admin('Delete user')
        if denied is not None:
            return denied
        result = self.transport.delete(f'users/{user_id}/')
        if not result:
            return self._failed(f"Delete user {user_id}", result)
        return Ok(None)
