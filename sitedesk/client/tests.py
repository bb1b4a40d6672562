"""
Test suite for the client data-access layer
Tests: result channel, retry policy, session state machine, website store
and snapshot fallback, driven against the in-process API
"""
from decimal import Decimal
from unittest import mock

import requests
from django.core.cache import cache
from django.core.signals import request_started, request_finished
from django.db import close_old_connections
from django.test import TestCase, override_settings
from rest_framework.test import RequestsClient

from sitedesk.client import (
    HttpTransport, IdentityManager, WebsiteStore, SnapshotCache, SessionState,
    ErrorKind, NewRecord, NewSubmission, UserChanges, InvalidRequest, Ok, retry,
)
from sitedesk.client.result import fail
from sitedesk.client.transport import error_message
from sitedesk.core.models import User
from sitedesk.core.test_utils import TestDataFactory, DEFAULT_PASSWORD
from sitedesk.websites.models import Website

BASE_URL = 'http://testserver/api/v1'


class OfflineSession(requests.Session):
    """Session whose every request fails to connect"""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def request(self, method, url, *args, **kwargs):
        self.calls += 1
        raise requests.exceptions.ConnectionError(f'Connection refused: {url}')


def make_transport(session=None):
    return HttpTransport(BASE_URL, session=session or RequestsClient())


class InProcessAPITestCase(TestCase):
    """
    Runs the API in-process for RequestsClient.

    Requests must not close the test transaction's connection, the same
    as for Django's own test client.
    """

    def setUp(self):
        super().setUp()
        cache.clear()
        for signal in (request_started, request_finished):
            signal.disconnect(close_old_connections)
            self.addCleanup(signal.connect, close_old_connections)


class ResultTests(TestCase):

    def test_truthiness(self):
        self.assertTrue(Ok([]))
        self.assertFalse(fail(ErrorKind.NETWORK, 'down'))

    def test_error_message_flattens_field_errors(self):
        self.assertEqual(error_message({'detail': 'Not found.'}), 'Not found.')
        self.assertEqual(error_message({'phone': ['Invalid phone']}), 'phone: Invalid phone')
        self.assertEqual(error_message({'non_field_errors': ['Bad input']}), 'Bad input')


@override_settings(SITEDESK_FETCH_MAX_RETRIES=3, SITEDESK_FETCH_BASE_DELAY=1.0)
class RetryTests(TestCase):

    def test_network_errors_retried_with_backoff(self):
        calls = []

        @retry()
        def flaky():
            calls.append(1)
            return fail(ErrorKind.NETWORK, 'down')

        with mock.patch('sitedesk.client.retry.time.sleep') as sleep:
            result = flaky()
        self.assertFalse(result)
        self.assertEqual(len(calls), 4)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [1.0, 2.0, 4.0])

    def test_recovers_after_transient_failure(self):
        outcomes = [fail(ErrorKind.NETWORK, 'down'), Ok('data')]

        @retry()
        def flaky():
            return outcomes.pop(0)

        with mock.patch('sitedesk.client.retry.time.sleep') as sleep:
            result = flaky()
        self.assertEqual(result.value, 'data')
        self.assertEqual(sleep.call_count, 1)

    def test_auth_errors_not_retried(self):
        calls = []

        @retry()
        def denied():
            calls.append(1)
            return fail(ErrorKind.AUTH, 'expired', 401)

        with mock.patch('sitedesk.client.retry.time.sleep') as sleep:
            result = denied()
        self.assertEqual(result.kind, ErrorKind.AUTH)
        self.assertEqual(len(calls), 1)
        sleep.assert_not_called()


class RequestTypeTests(TestCase):

    def test_unknown_fields_rejected(self):
        with self.assertRaises(InvalidRequest):
            UserChanges.from_mapping({'name': 'x', 'is_superuser': True})

    def test_user_changes_validated(self):
        with self.assertRaises(InvalidRequest):
            UserChanges.from_mapping({'phone': '+600'})
        with self.assertRaises(InvalidRequest):
            UserChanges.from_mapping({'ranking': 'emperor'})
        changes = UserChanges.from_mapping({'email': 'bob', 'ranking': 'agent'})
        self.assertEqual(changes.to_payload(), {'email': 'bob@aibet.asia', 'ranking': 'agent'})

    def test_new_submission_formats_url(self):
        submission = NewSubmission.from_mapping({'name': 'My Shop', 'url': 'shop.example.com'})
        self.assertEqual(submission.url, 'https://shop.example.com')
        document = NewSubmission.from_mapping({'name': 'Statement', 'type': 'bank-statement'})
        self.assertEqual(document.url, 'N/A')

    def test_new_submission_requires_name(self):
        with self.assertRaises(InvalidRequest):
            NewSubmission.from_mapping({'url': 'shop.example.com'})

    def test_new_record_coerces_amounts(self):
        record = NewRecord.from_mapping({'day': 1, 'credit': 'oops', 'profit': '20', 'start_date': '2024-01-01'})
        payload = record.to_payload()
        self.assertEqual(payload['day'], '1')
        self.assertEqual(payload['credit'], '0')
        self.assertEqual(payload['profit'], '20.00')
        self.assertEqual(payload['start_date'], '2024-01-01')
        self.assertNotIn('net_profit', payload)


class IdentityManagerTests(InProcessAPITestCase):
    """Test the session state machine against the API"""

    def setUp(self):
        super().setUp()
        self.transport = make_transport()
        self.identity = IdentityManager(self.transport)

    def test_signup_then_login(self):
        result = self.identity.signup('dave', 'secret123', '+60123456789', 'Dave')
        self.assertTrue(result)
        self.assertEqual(result.value.email, 'dave@aibet.asia')
        self.assertEqual(self.identity.state, SessionState.AUTHENTICATED)
        self.assertEqual(self.identity.role, 'user')
        self.assertFalse(self.identity.loading)

        self.identity.logout()
        self.assertEqual(self.identity.state, SessionState.UNAUTHENTICATED)

        self.assertTrue(self.identity.login('dave', 'secret123'))
        self.assertEqual(self.identity.user.email, 'dave@aibet.asia')

    def test_login_wrong_portal(self):
        TestDataFactory.create_user(email='erin@test.com')
        result = self.identity.login('erin@test.com', DEFAULT_PASSWORD, as_admin=True)
        self.assertFalse(result)
        self.assertEqual(result.kind, ErrorKind.AUTH)
        self.assertEqual(self.identity.state, SessionState.UNAUTHENTICATED)
        self.assertIsNone(self.identity.user)

    def test_signup_invalid_phone_makes_no_request(self):
        session = OfflineSession()
        identity = IdentityManager(make_transport(session))
        for phone in ['+60', '+600', '+6', '']:
            result = identity.signup('frank', 'secret123', phone, 'Frank')
            self.assertEqual(result.kind, ErrorKind.VALIDATION)
        self.assertEqual(session.calls, 0)

    def test_second_admin_signup_fails(self):
        self.assertTrue(self.identity.signup('boss', 'secret123', '+60123456789', 'Boss', as_admin=True))
        self.identity.logout()

        other = IdentityManager(make_transport())
        result = other.signup('boss2', 'secret123', '+60198765432', 'Boss Two', as_admin=True)
        self.assertEqual(result.kind, ErrorKind.VALIDATION)
        self.assertEqual(User.objects.filter(role=User.ROLE_ADMIN).count(), 1)
        self.assertTrue(other.check_admin_exists().value)

    def test_logout_twice(self):
        self.identity.signup('gina', 'secret123', '+60123456789', 'Gina')
        self.assertTrue(self.identity.logout())
        self.assertTrue(self.identity.logout())
        self.assertEqual(self.identity.state, SessionState.UNAUTHENTICATED)

    def test_logout_when_offline(self):
        self.identity.signup('hank', 'secret123', '+60123456789', 'Hank')
        self.transport.session = OfflineSession()
        self.assertTrue(self.identity.logout())
        self.assertIsNone(self.transport.access_token)

    def test_restore_session(self):
        self.identity.signup('ivy', 'secret123', '+60123456789', 'Ivy')
        access, refresh = self.transport.access_token, self.transport.refresh_token

        restored = IdentityManager(make_transport())
        result = restored.restore(access, refresh)
        self.assertTrue(result)
        self.assertEqual(restored.user.email, 'ivy@aibet.asia')

    def test_expired_access_token_is_refreshed(self):
        self.identity.signup('jack', 'secret123', '+60123456789', 'Jack')
        self.transport.access_token = 'not-a-token'
        self.assertTrue(self.identity.change_password('secret123', 'secret456'))
        self.assertNotEqual(self.transport.access_token, 'not-a-token')

    def test_change_password_wrong_current(self):
        self.identity.signup('kate', 'secret123', '+60123456789', 'Kate')
        result = self.identity.change_password('nope-nope', 'secret456')
        self.assertEqual(result.kind, ErrorKind.VALIDATION)


class UserAdministrationTests(InProcessAPITestCase):
    """Test admin operations of the identity manager"""

    def setUp(self):
        super().setUp()
        self.admin = TestDataFactory.create_admin(email='boss@test.com')
        self.user = TestDataFactory.create_user(email='liam@test.com')
        self.identity = IdentityManager(make_transport(), snapshot=SnapshotCache())
        self.assertTrue(self.identity.login('boss@test.com', DEFAULT_PASSWORD, as_admin=True))

    def test_get_all_users(self):
        result = self.identity.get_all_users()
        self.assertEqual({profile.email for profile in result.value}, {'boss@test.com', 'liam@test.com'})

    def test_non_admin_cannot_list_users(self):
        identity = IdentityManager(make_transport())
        identity.login('liam@test.com', DEFAULT_PASSWORD)
        result = identity.get_all_users()
        self.assertEqual(result.kind, ErrorKind.AUTH)

    @override_settings(SITEDESK_FETCH_MAX_RETRIES=1)
    def test_get_all_users_serves_snapshot_when_offline(self):
        self.identity.get_all_users()
        self.identity.transport.session = OfflineSession()
        with mock.patch('sitedesk.client.retry.time.sleep'):
            result = self.identity.get_all_users()
        self.assertTrue(result)
        self.assertEqual(len(result.value), 2)

    def test_update_user(self):
        result = self.identity.update_user(self.user.id, {'name': 'Liam N', 'ranking': 'senior'}, new_password='newpass99')
        self.assertTrue(result)
        self.assertEqual(result.value.ranking, 'senior')
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('newpass99'))

    def test_update_user_unknown_field(self):
        result = self.identity.update_user(self.user.id, {'role': 'user', 'salary': 10})
        self.assertEqual(result.kind, ErrorKind.VALIDATION)

    def test_update_user_status(self):
        result = self.identity.update_user_status(self.user.id, 'inactive')
        self.assertEqual(result.value.status, 'inactive')
        self.assertEqual(self.identity.update_user_status(self.user.id, 'frozen').kind, ErrorKind.VALIDATION)

    def test_delete_user(self):
        self.assertTrue(self.identity.delete_user(self.user.id))
        self.assertEqual(self.identity.delete_user(self.user.id).kind, ErrorKind.NOT_FOUND)


@override_settings(SITEDESK_FETCH_MAX_RETRIES=3, SITEDESK_FETCH_BASE_DELAY=1.0)
class WebsiteStoreTests(InProcessAPITestCase):
    """Test the website store against the API"""

    def setUp(self):
        super().setUp()
        self.user = TestDataFactory.create_user(email='mia@test.com')
        self.admin = TestDataFactory.create_admin(email='boss@test.com')

        self.identity = IdentityManager(make_transport())
        self.identity.login('mia@test.com', DEFAULT_PASSWORD)
        self.store = WebsiteStore(self.identity.transport, self.identity, snapshot=SnapshotCache())

        self.admin_identity = IdentityManager(make_transport())
        self.admin_identity.login('boss@test.com', DEFAULT_PASSWORD, as_admin=True)
        self.admin_store = WebsiteStore(self.admin_identity.transport, self.admin_identity)

    def test_add_then_fetch(self):
        result = self.store.add({'name': 'My Shop', 'url': 'shop.example.com', 'login_url': 'https://shop.example.com/admin'})
        self.assertTrue(result)

        fetched = self.store.fetch_all()
        self.assertTrue(fetched)
        self.assertEqual(len(self.store.get_all()), 1)
        website = self.store.get_all()[0]
        self.assertEqual(website.id, result.value.id)
        self.assertEqual(website.name, 'My Shop')
        self.assertEqual(website.url, 'https://shop.example.com')
        self.assertEqual(website.login_url, 'https://shop.example.com/admin')
        self.assertEqual(website.status, 'pending')
        self.assertEqual(self.store.get_for_user(self.user.id), [website])
        self.assertEqual(self.store.get_for_user(self.admin.id), [])

    def test_add_requires_session(self):
        store = WebsiteStore(make_transport(), IdentityManager(make_transport()))
        result = store.add({'name': 'My Shop', 'url': 'shop.example.com'})
        self.assertEqual(result.kind, ErrorKind.AUTH)
        self.assertFalse(Website.objects.exists())

    def test_add_unknown_field(self):
        result = self.store.add({'name': 'My Shop', 'url': 'shop.example.com', 'status': 'approved'})
        self.assertEqual(result.kind, ErrorKind.VALIDATION)
        self.assertFalse(Website.objects.exists())

    def test_add_is_not_retried(self):
        session = OfflineSession()
        self.store.transport.session = session
        with mock.patch('sitedesk.client.retry.time.sleep'):
            result = self.store.add({'name': 'My Shop', 'url': 'shop.example.com'})
        self.assertEqual(result.kind, ErrorKind.NETWORK)
        self.assertEqual(session.calls, 1)
        self.assertEqual(self.store.get_all(), [])

    def test_review_and_manage_records(self):
        website_id = self.store.add({'name': 'My Shop', 'url': 'shop.example.com'}).value.id
        self.admin_store.fetch_all()

        result = self.admin_store.set_status(website_id, 'approved')
        self.assertEqual(result.value.status, 'approved')
        self.assertEqual(self.admin_store.find(website_id).status, 'approved')

        record = self.admin_store.add_record(website_id, {
            'day': '1', 'credit': 100, 'profit': 20, 'gross_profit': 25, 'service_fee': 5,
            'net_profit': 15, 'start_date': '2024-01-01', 'end_date': '2024-01-31',
        })
        self.assertTrue(record)
        self.assertTrue(record.value.id)
        nested = self.admin_store.find(website_id).management_records
        self.assertEqual([item.id for item in nested], [record.value.id])
        self.assertEqual(nested[0].net_profit, Decimal('15'))

        updated = self.admin_store.update_record(website_id, record.value.id, {'credit': '150'})
        self.assertEqual(updated.value.credit, Decimal('150'))
        self.assertEqual(self.admin_store.find(website_id).management_records[0].credit, Decimal('150'))

        self.store.fetch_all()
        self.assertEqual(len(self.store.find(website_id).management_records), 1)

        for _ in range(2):
            self.assertTrue(self.admin_store.clear_records(website_id))
            self.assertEqual(self.admin_store.find(website_id).management_records, [])
        self.admin_store.fetch_all()
        self.assertEqual(self.admin_store.find(website_id).management_records, [])

    def test_delete_record(self):
        website = TestDataFactory.create_website(self.user, status='approved')
        record = TestDataFactory.create_record(website)
        self.admin_store.fetch_all()
        self.assertTrue(self.admin_store.delete_record(website.id, record.id))
        self.assertEqual(self.admin_store.find(website.id).management_records, [])

    def test_add_record_rounds_fractional_amounts(self):
        website = TestDataFactory.create_website(self.user, status='approved')
        result = self.admin_store.add_record(website.id, {'day': '1', 'credit': 100 / 3, 'profit': 10.555})
        self.assertTrue(result)
        self.assertEqual(result.value.credit, Decimal('33.33'))
        self.assertEqual(result.value.profit, Decimal('10.56'))

        updated = self.admin_store.update_record(website.id, result.value.id, {'service_fee': '2.005'})
        self.assertEqual(updated.value.service_fee, Decimal('2.01'))

    def test_add_record_oversized_amount(self):
        session = OfflineSession()
        website = TestDataFactory.create_website(self.user, status='approved')
        self.admin_store.transport.session = session
        result = self.admin_store.add_record(website.id, {'day': '1', 'credit': 1e15})
        self.assertEqual(result.kind, ErrorKind.VALIDATION)
        self.assertEqual(session.calls, 0)

    def test_concurrent_record_edits_last_write_wins(self):
        website = TestDataFactory.create_website(self.user, status='approved')
        record = TestDataFactory.create_record(website)

        other_identity = IdentityManager(make_transport())
        other_identity.login('boss@test.com', DEFAULT_PASSWORD, as_admin=True)
        other_store = WebsiteStore(other_identity.transport, other_identity)
        self.admin_store.fetch_all()
        other_store.fetch_all()

        self.assertTrue(self.admin_store.update_record(website.id, record.id, {'credit': '200'}))
        self.assertTrue(other_store.update_record(website.id, record.id, {'credit': '300'}))

        self.assertTrue(self.admin_store.fetch_all())
        self.assertEqual(self.admin_store.find(website.id).management_records[0].credit, Decimal('300'))
        record.refresh_from_db()
        self.assertEqual(record.credit, Decimal('300'))

    def test_add_record_to_rejected_submission(self):
        website = TestDataFactory.create_website(self.user, status='rejected')
        result = self.admin_store.add_record(website.id, {'day': '1', 'credit': 10})
        self.assertEqual(result.kind, ErrorKind.VALIDATION)

        self.admin_store.fetch_all()
        result = self.admin_store.add_record(website.id, {'day': '1', 'credit': 10})
        self.assertEqual(result.kind, ErrorKind.VALIDATION)

    def test_rejection_is_final(self):
        website = TestDataFactory.create_website(self.user)
        self.assertTrue(self.admin_store.set_status(website.id, 'rejected', 'Broken link'))
        result = self.admin_store.set_status(website.id, 'approved')
        self.assertEqual(result.kind, ErrorKind.VALIDATION)

    def test_owner_cannot_set_status(self):
        website = TestDataFactory.create_website(self.user)
        result = self.store.set_status(website.id, 'approved')
        self.assertEqual(result.kind, ErrorKind.AUTH)

    def test_update_and_delete(self):
        website = TestDataFactory.create_website(self.user)
        self.store.fetch_all()

        result = self.store.update(website.id, {'name': 'Renamed'})
        self.assertEqual(result.value.name, 'Renamed')
        self.assertEqual(self.store.find(website.id).name, 'Renamed')

        self.assertEqual(self.store.update(website.id, {'status': 'approved'}).kind, ErrorKind.VALIDATION)

        self.assertTrue(self.store.delete(website.id))
        self.assertEqual(self.store.get_all(), [])
        self.assertEqual(self.store.delete(website.id).kind, ErrorKind.NOT_FOUND)

    def test_fetch_retries_then_keeps_data(self):
        TestDataFactory.create_website(self.user)
        self.store.fetch_all()

        session = OfflineSession()
        self.store.transport.session = session
        with mock.patch('sitedesk.client.retry.time.sleep') as sleep:
            result = self.store.fetch_all()

        self.assertEqual(result.kind, ErrorKind.NETWORK)
        self.assertEqual(session.calls, 4)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [1.0, 2.0, 4.0])
        self.assertEqual(len(self.store.get_all()), 1)
        self.assertEqual(self.store.error.kind, ErrorKind.NETWORK)
        self.assertFalse(self.store.loading)

    def test_fetch_auth_error_aborts(self):
        store = WebsiteStore(make_transport(), self.identity)
        store.transport.set_tokens('not-a-token')
        with mock.patch('sitedesk.client.retry.time.sleep') as sleep:
            result = store.fetch_all()
        self.assertEqual(result.kind, ErrorKind.AUTH)
        self.assertTrue(store.needs_reauth)
        sleep.assert_not_called()

    def test_snapshot_fallback(self):
        TestDataFactory.create_website(self.user, name='Cached Shop')
        self.store.fetch_all()

        offline = WebsiteStore(make_transport(OfflineSession()), self.identity, snapshot=SnapshotCache())
        with mock.patch('sitedesk.client.retry.time.sleep'):
            result = offline.fetch_all()
        self.assertFalse(result)
        self.assertEqual([website.name for website in offline.get_all()], ['Cached Shop'])
        self.assertIsNotNone(offline.error)

    def test_no_fallback_without_snapshot(self):
        TestDataFactory.create_website(self.user)
        self.store.fetch_all()

        offline = WebsiteStore(make_transport(OfflineSession()), self.identity)
        with mock.patch('sitedesk.client.retry.time.sleep'):
            offline.fetch_all()
        self.assertEqual(offline.get_all(), [])

    def test_logout_clears_snapshot(self):
        self.identity.snapshot = SnapshotCache()
        TestDataFactory.create_website(self.user)
        self.store.fetch_all()
        scope = self.identity.scope
        self.identity.logout()
        self.assertIsNone(SnapshotCache().load('websites', scope))
