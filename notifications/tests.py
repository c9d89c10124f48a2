from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.test import SimpleTestCase, override_settings

from notifications.claim_email import notification_mode, send_claim_notification

CODE = '0123456789ABCDEF0123456789ABCDEF'


class ClaimEmailTest(SimpleTestCase):
    def test_no_recipient(self):
        result = send_claim_notification(None, CODE, Decimal('5'), None, 'testnet')
        self.assertFalse(result.success)
        self.assertEqual(result.method, 'not_attempted')

    @override_settings(RESEND_API_KEY='')
    @patch('notifications.claim_email.requests.post')
    def test_simulated_without_api_key(self, mock_post):
        result = send_claim_notification('friend@example.com', CODE, Decimal('5'), 'Enjoy', 'testnet', 5001)
        self.assertTrue(result.success)
        self.assertEqual(result.method, 'simulated')
        self.assertEqual(notification_mode(), 'simulated')
        mock_post.assert_not_called()

    @override_settings(RESEND_API_KEY='re_test', RESEND_API_URL='https://resend.test/emails')
    @patch('notifications.claim_email.requests.post')
    def test_sends_through_resend(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200, json=lambda: {'id': 'msg_1'})

        result = send_claim_notification('friend@example.com', CODE, Decimal('5'), '<b>hi</b>', 'testnet', 5001)

        self.assertTrue(result.success)
        self.assertEqual(result.method, 'email')
        self.assertEqual(result.message_id, 'msg_1')
        self.assertEqual(notification_mode(), 'connected')

        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://resend.test/emails')
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer re_test')
        self.assertEqual(kwargs['json']['to'], ['friend@example.com'])
        self.assertIn(CODE, kwargs['json']['html'])
        self.assertIn('&lt;b&gt;hi&lt;/b&gt;', kwargs['json']['html'])
        self.assertEqual(kwargs['timeout'], 10)

    @override_settings(RESEND_API_KEY='re_test')
    @patch('notifications.claim_email.requests.post')
    def test_http_error_is_reported(self, mock_post):
        mock_post.return_value = MagicMock(status_code=422, text='invalid from')
        result = send_claim_notification('friend@example.com', CODE, Decimal('5'), None, 'testnet')
        self.assertFalse(result.success)
        self.assertEqual(result.error, 'HTTP 422')

    @override_settings(RESEND_API_KEY='re_test')
    @patch('notifications.claim_email.requests.post')
    def test_transport_error_is_reported(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('refused')
        result = send_claim_notification('friend@example.com', CODE, Decimal('5'), None, 'testnet')
        self.assertFalse(result.success)
        self.assertEqual(result.method, 'email')
        self.assertIn('refused', result.error)
