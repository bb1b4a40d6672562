"""
Test suite for submissions and management records
Tests: URL/amount normalization, status transitions, ownership, record
mutations and dashboard counts
"""
import uuid
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from sitedesk.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from sitedesk.websites.models import Website, ManagementRecord
from sitedesk.websites.validators import format_url, coerce_amount, AMOUNT_LIMIT_ERROR


class ValidatorTests(TestCase):

    def test_format_url_prefixes_https(self):
        self.assertEqual(format_url('shop.example.com'), 'https://shop.example.com')

    def test_format_url_keeps_scheme(self):
        self.assertEqual(format_url('http://shop.example.com'), 'http://shop.example.com')
        self.assertEqual(format_url('https://shop.example.com'), 'https://shop.example.com')

    def test_format_url_documents(self):
        self.assertEqual(format_url('N/A'), 'N/A')
        self.assertEqual(format_url('', 'website'), 'N/A')
        self.assertEqual(format_url('whatever', 'id-card'), 'N/A')

    def test_coerce_amount(self):
        self.assertEqual(coerce_amount('12.50'), Decimal('12.50'))
        self.assertEqual(coerce_amount(7), Decimal('7'))
        for value in [None, '', 'abc', True, 'NaN', 'Infinity']:
            self.assertEqual(coerce_amount(value), Decimal('0'), value)

    def test_coerce_amount_rounds_to_cents(self):
        self.assertEqual(coerce_amount(10.555), Decimal('10.56'))
        self.assertEqual(coerce_amount('-2.345'), Decimal('-2.35'))
        self.assertEqual(coerce_amount(100 / 3), Decimal('33.33'))


class WebsiteModelTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()

    def test_pending_can_be_decided(self):
        website = TestDataFactory.create_website(self.user)
        self.assertTrue(website.can_transition_to('approved'))
        self.assertTrue(website.can_transition_to('rejected'))

    def test_decided_is_final(self):
        website = TestDataFactory.create_website(self.user, status='rejected')
        self.assertFalse(website.can_transition_to('approved'))
        self.assertFalse(website.can_transition_to('pending'))
        self.assertTrue(website.can_transition_to('rejected'))

    def test_apply_status_keeps_reason_only_when_rejected(self):
        website = TestDataFactory.create_website(self.user)
        website.apply_status('rejected', 'Broken link')
        website.refresh_from_db()
        self.assertEqual(website.rejection_reason, 'Broken link')

        other = TestDataFactory.create_website(self.user)
        other.apply_status('approved', 'ignored')
        other.refresh_from_db()
        self.assertIsNone(other.rejection_reason)

    def test_records_deleted_with_website(self):
        website = TestDataFactory.create_website(self.user, status='approved')
        TestDataFactory.create_record(website)
        website.delete()
        self.assertFalse(ManagementRecord.objects.exists())


class WebsiteAPITests(TestCase):
    """Test submission endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_submit_website(self):
        response = self.client.post('/api/v1/websites/', {
            'name': 'My Shop', 'url': 'shop.example.com', 'type': 'website'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['url'], 'https://shop.example.com')
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['user_id'], self.user.id)
        self.assertEqual(response.data['user_email'], self.user.email)
        self.assertEqual(response.data['management_records'], [])

    def test_submit_with_client_id(self):
        website_id = uuid.uuid4()
        response = self.client.post('/api/v1/websites/', {
            'id': str(website_id), 'name': 'My Shop', 'url': 'shop.example.com'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Website.objects.filter(pk=website_id).exists())

        again = self.client.post('/api/v1/websites/', {
            'id': str(website_id), 'name': 'My Shop', 'url': 'shop.example.com'
        }, format='json')
        self.assertEqual(again.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Website.objects.count(), 1)

    def test_submit_document(self):
        response = self.client.post('/api/v1/websites/', {
            'name': 'Passport', 'type': 'id-card',
            'files': [{'name': 'front.jpg', 'url': 'https://files.example.com/front.jpg', 'size': 2048, 'type': 'image/jpeg'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['url'], 'N/A')
        self.assertEqual(response.data['files'][0]['name'], 'front.jpg')

    def test_website_requires_url(self):
        response = self.client.post('/api/v1/websites/', {'name': 'No URL', 'type': 'app'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('url', response.data)

    def test_submit_cannot_set_status(self):
        response = self.client.post('/api/v1/websites/', {
            'name': 'My Shop', 'url': 'shop.example.com', 'status': 'approved'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('status', response.data)
        self.assertFalse(Website.objects.exists())

    def test_user_lists_own_websites(self):
        own = TestDataFactory.create_website(self.user)
        TestDataFactory.create_website(self.other)
        response = self.client.get('/api/v1/websites/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['id'] for item in response.data], [str(own.id)])

    def test_admin_lists_all_websites(self):
        TestDataFactory.create_website(self.user)
        TestDataFactory.create_website(self.other)
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/websites/')
        self.assertEqual(len(response.data), 2)

    def test_filter_by_status(self):
        TestDataFactory.create_website(self.user)
        approved = TestDataFactory.create_website(self.user, status='approved')
        response = self.client.get('/api/v1/websites/', {'status': 'approved'})
        self.assertEqual([item['id'] for item in response.data], [str(approved.id)])

    def test_invalid_filter(self):
        response = self.client.get('/api/v1/websites/', {'status': 'archived'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_users_website_is_forbidden(self):
        website = TestDataFactory.create_website(self.other)
        response = self.client.get(f'/api/v1/websites/{website.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_missing_website(self):
        response = self.client.get(f'/api/v1/websites/{uuid.uuid4()}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_website(self):
        website = TestDataFactory.create_website(self.user)
        response = self.client.patch(f'/api/v1/websites/{website.id}/', {
            'name': 'Renamed', 'url': 'new.example.com'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'Renamed')
        self.assertEqual(response.data['url'], 'https://new.example.com')

    def test_update_cannot_change_id(self):
        website = TestDataFactory.create_website(self.user)
        response = self.client.patch(f'/api/v1/websites/{website.id}/', {'id': str(uuid.uuid4())}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_website(self):
        website = TestDataFactory.create_website(self.user)
        response = self.client.delete(f'/api/v1/websites/{website.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Website.objects.filter(pk=website.id).exists())

    def test_summary(self):
        TestDataFactory.create_website(self.user)
        TestDataFactory.create_website(self.user, status='approved')
        TestDataFactory.create_website(self.other, status='rejected')
        response = self.client.get('/api/v1/websites/summary/')
        self.assertEqual(response.data, {'total': 2, 'pending': 1, 'approved': 1, 'rejected': 0})

        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/websites/summary/')
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(response.data['users'], 2)


class WebsiteStatusAPITests(TestCase):
    """Test admin review of submissions"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_admin()
        self.website = TestDataFactory.create_website(self.user)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def set_status(self, new_status, reason=None):
        data = {'status': new_status}
        if reason is not None:
            data['rejection_reason'] = reason
        return self.client.post(f'/api/v1/websites/{self.website.id}/status/', data, format='json')

    def test_approve(self):
        before = self.website.updated_at
        response = self.set_status('approved')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.website.refresh_from_db()
        self.assertEqual(self.website.status, 'approved')
        self.assertGreater(self.website.updated_at, before)

    def test_reject_with_reason(self):
        response = self.set_status('rejected', 'Suspicious domain')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['rejection_reason'], 'Suspicious domain')

    def test_rejected_cannot_be_approved(self):
        self.set_status('rejected')
        response = self.set_status('approved')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.website.refresh_from_db()
        self.assertEqual(self.website.status, 'rejected')

    def test_reapplying_status_is_accepted(self):
        self.set_status('approved')
        response = self.set_status('approved')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_owner_cannot_review(self):
        self.client.authenticate_user(self.user)
        response = self.set_status('approved')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ManagementRecordAPITests(TestCase):
    """Test management record endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_admin()
        self.website = TestDataFactory.create_website(self.user, status='approved')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)
        self.url = f'/api/v1/websites/{self.website.id}/records/'

    def test_add_record(self):
        response = self.client.post(self.url, {
            'day': '1', 'credit': 100, 'profit': 20, 'gross_profit': 25, 'service_fee': 5,
            'net_profit': 15, 'start_date': '2024-01-01', 'end_date': '2024-01-31',
            'tasks': [{'type': 'deposit', 'description': 'Top up', 'status': 'completed'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['website_id'], str(self.website.id))
        self.assertEqual(response.data['net_profit'], '15.00')
        self.assertEqual(response.data['tasks'][0]['status'], 'completed')

        detail = self.client.get(f'/api/v1/websites/{self.website.id}/')
        self.assertEqual(len(detail.data['management_records']), 1)
        self.assertEqual(detail.data['management_records'][0]['id'], response.data['id'])

    def test_net_profit_derived(self):
        response = self.client.post(self.url, {'day': '2', 'gross_profit': '30', 'service_fee': '4.5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['net_profit'], '25.50')

    def test_unparseable_amount_is_zero(self):
        response = self.client.post(self.url, {'day': '3', 'credit': 'lots'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['credit'], '0.00')

    def test_fractional_amounts_rounded(self):
        response = self.client.post(self.url, {'day': '4', 'credit': 10.555, 'profit': 100 / 3, 'service_fee': '1.005'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['credit'], '10.56')
        self.assertEqual(response.data['profit'], '33.33')
        self.assertEqual(response.data['net_profit'], '-1.01')
        record = ManagementRecord.objects.get(pk=response.data['id'])
        self.assertEqual(record.credit, Decimal('10.56'))

    def test_oversized_amount_rejected(self):
        for amount in [1e15, '-1000000000000', '999999999999.995']:
            response = self.client.post(self.url, {'day': '5', 'credit': amount}, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, amount)
            self.assertEqual(response.data['credit'], [AMOUNT_LIMIT_ERROR])
        self.assertFalse(ManagementRecord.objects.exists())

        response = self.client.post(self.url, {'day': '5', 'credit': '999999999999.99'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_end_before_start(self):
        response = self.client.post(self.url, {
            'day': '1', 'start_date': '2024-02-01', 'end_date': '2024-01-01'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('end_date', response.data)

    def test_cannot_add_to_unapproved(self):
        for website_status in ['pending', 'rejected']:
            website = TestDataFactory.create_website(self.user, status=website_status)
            response = self.client.post(f'/api/v1/websites/{website.id}/records/', {'day': '1'}, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, website_status)
        self.assertFalse(ManagementRecord.objects.exists())

    def test_owner_reads_but_cannot_write(self):
        TestDataFactory.create_record(self.website)
        self.client.authenticate_user(self.user)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        response = self.client.post(self.url, {'day': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_record_list_is_scoped(self):
        TestDataFactory.create_record(self.website)
        stranger = TestDataFactory.create_user()
        TestDataFactory.create_record(TestDataFactory.create_website(stranger, status='approved'))

        response = self.client.get('/api/v1/records/')
        self.assertEqual(len(response.data), 2)

        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/records/')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['website_id'], str(self.website.id))

    def test_update_record(self):
        record = TestDataFactory.create_record(self.website)
        response = self.client.patch(f'{self.url}{record.id}/', {'credit': '250'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        record.refresh_from_db()
        self.assertEqual(record.credit, Decimal('250'))
        self.assertEqual(record.net_profit, Decimal('20.00'))

    def test_update_record_unknown_field(self):
        record = TestDataFactory.create_record(self.website)
        response = self.client.patch(f'{self.url}{record.id}/', {'bonus': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_record(self):
        record = TestDataFactory.create_record(self.website)
        response = self.client.delete(f'{self.url}{record.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ManagementRecord.objects.exists())

    def test_record_of_other_website_not_found(self):
        record = TestDataFactory.create_record(self.website)
        other = TestDataFactory.create_website(self.user, status='approved')
        response = self.client.delete(f'/api/v1/websites/{other.id}/records/{record.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_clear_records_twice(self):
        TestDataFactory.create_record(self.website)
        TestDataFactory.create_record(self.website, day='2')
        for _ in range(2):
            response = self.client.delete(self.url)
            self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
            self.assertEqual(self.client.get(self.url).data, [])
