import json
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from core.exceptions import (
    ForbiddenError, IntegrityFailure, InvalidInputError, InvalidStateError, NotFoundError, UpstreamError,
)
from core.models import Notification, Project, Proposal
from financeapp.config import MarketplaceConfig
from financeapp.models import Transaction, Wallet
from financeapp.services.ledger import WalletLedger
from . import tasks
from .gateway import InMemoryEscrowGateway, RazorpayEscrowGateway, get_escrow_gateway
from .models import Deal, Dispute
from .services.deal_service import DealService
from .services.dispute_service import DisputeService

User = get_user_model()

WEBHOOK_SECRET = 'whsec_test'


def make_user(username, role, **extra):
    return User.objects.create_user(username=username, password='pass12345', role=role, **extra)


def order_paid_body(deal):
    return json.dumps({
        'event': 'order.paid',
        'payload': {
            'order': {'entity': {'id': deal.escrow_payment_id, 'notes': {'deal_id': str(deal.id)}}},
            'payment': {'entity': {'id': 'pay_1', 'order_id': deal.escrow_payment_id}},
        },
    }).encode()


class DealFixtureMixin:
    def setUp(self):
        cache.clear()
        self.config = MarketplaceConfig(commission_rate=Decimal('0.10'))
        self.gateway = InMemoryEscrowGateway()
        self.client_user = make_user('client', 'client', email='client@example.com')
        self.freelancer = make_user('freelancer', 'freelancer')
        self.admin = make_user('admin', 'admin')
        self.project = Project.objects.create(
            client=self.client_user, title='Telegram shop bot', description='Bot with payments',
            budget=Decimal('400.00'), skills=['telegram', 'payments'],
        )
        self.proposal = Proposal.objects.create(
            project=self.project, freelancer=self.freelancer, content='I can do it', price=Decimal('380.00'),
        )
        self.deals = DealService(config=self.config, gateway=self.gateway, webhook_secret=WEBHOOK_SECRET)
        self.disputes = DisputeService(config=self.config)

    def create_deal(self, amount='400.00'):
        deal, _ = self.deals.create_deal(self.client_user.id, self.proposal.id, amount, 'USD')
        return deal

    def escrowed_deal(self, amount='400.00'):
        deal = self.create_deal(amount)
        self.deals.handle_payment_success(deal.id)
        deal.refresh_from_db()
        return deal


class CreateDealTest(DealFixtureMixin, TestCase):
    def test_create_deal_stores_intent(self):
        deal, intent = self.deals.create_deal(self.client_user.id, self.proposal.id, '400', 'usd')

        self.assertEqual(deal.status, 'created')
        self.assertEqual(deal.sender, self.client_user)
        self.assertEqual(deal.receiver, self.freelancer)
        self.assertEqual(deal.amount, Decimal('400.00'))
        self.assertEqual(deal.currency, 'USD')
        self.assertEqual(deal.escrow_payment_id, intent.id)
        self.assertEqual(intent.amount_minor, 40000)
        self.assertTrue(intent.client_secret)

        recorded = self.gateway.intents[intent.id]
        self.assertEqual(recorded['metadata']['deal_id'], deal.id)

        self.client_user.refresh_from_db()
        self.assertIn(self.client_user.gateway_customer_id, self.gateway.customers)

    def test_customer_is_reused(self):
        self.create_deal()
        self.create_deal()
        self.assertEqual(len(self.gateway.customers), 1)

    def test_amount_need_not_match_proposal_price(self):
        deal = self.create_deal('550.00')
        self.assertEqual(deal.amount, Decimal('550.00'))

    def test_currency_must_match_receiver_wallet(self):
        WalletLedger.ensure_wallet(self.freelancer, currency='USD')
        with self.assertRaises(InvalidInputError):
            self.deals.create_deal(self.client_user.id, self.proposal.id, '400', 'INR')
        self.assertFalse(Deal.objects.exists())

        deal, _ = self.deals.create_deal(self.client_user.id, self.proposal.id, '400', 'USD')
        self.assertEqual(deal.currency, 'USD')

    def test_only_clients(self):
        with self.assertRaises(ForbiddenError):
            self.deals.create_deal(self.freelancer.id, self.proposal.id, '100', 'USD')

    def test_only_project_owner(self):
        other = make_user('other-client', 'client')
        with self.assertRaises(ForbiddenError):
            self.deals.create_deal(other.id, self.proposal.id, '100', 'USD')

    def test_invalid_amount_and_currency(self):
        for amount in ['0', '-1', 'abc']:
            with self.assertRaises(InvalidInputError):
                self.deals.create_deal(self.client_user.id, self.proposal.id, amount, 'USD')
        with self.assertRaises(InvalidInputError):
            self.deals.create_deal(self.client_user.id, self.proposal.id, '10', 'XYZ')
        self.assertFalse(Deal.objects.exists())

    def test_unknown_proposal(self):
        with self.assertRaises(NotFoundError):
            self.deals.create_deal(self.client_user.id, 9999, '10', 'USD')

    def test_intent_failure_deletes_deal(self):
        service = DealService(config=self.config, gateway=InMemoryEscrowGateway(fail_on=['create_payment_intent']))
        with self.assertRaises(UpstreamError):
            service.create_deal(self.client_user.id, self.proposal.id, '400', 'USD')
        self.assertFalse(Deal.objects.exists())

    def test_customer_failure_deletes_deal(self):
        service = DealService(config=self.config, gateway=InMemoryEscrowGateway(fail_on=['create_customer']))
        with self.assertRaises(UpstreamError):
            service.create_deal(self.client_user.id, self.proposal.id, '400', 'USD')
        self.assertFalse(Deal.objects.exists())

    def test_unexpected_gateway_error_becomes_upstream(self):
        gateway = mock.Mock(spec=InMemoryEscrowGateway)
        gateway.create_customer.return_value = 'cust_1'
        gateway.create_payment_intent.side_effect = ConnectionError('timeout')
        service = DealService(config=self.config, gateway=gateway)
        with self.assertRaises(UpstreamError):
            service.create_deal(self.client_user.id, self.proposal.id, '400', 'USD')
        self.assertFalse(Deal.objects.exists())

    @override_settings(ESCROW_GATEWAY_BACKEND='carrier-pigeon')
    def test_misconfigured_backend_writes_nothing(self):
        service = DealService(config=self.config)
        with self.assertRaises(UpstreamError):
            service.create_deal(self.client_user.id, self.proposal.id, '400', 'USD')
        self.assertFalse(Deal.objects.exists())


class EscrowWebhookTest(DealFixtureMixin, TestCase):
    def sign(self, body):
        return InMemoryEscrowGateway.sign(body, WEBHOOK_SECRET)

    def test_order_paid_escrows_deal(self):
        deal = self.create_deal()
        body = order_paid_body(deal)

        result = self.deals.handle_webhook(body, self.sign(body), event_id='evt_1')

        deal.refresh_from_db()
        self.assertEqual(result['status'], 'escrowed')
        self.assertEqual(deal.status, 'escrowed')

    def test_replay_is_noop(self):
        deal = self.create_deal()
        body = order_paid_body(deal)
        self.deals.handle_webhook(body, self.sign(body), event_id='evt_1')

        same_delivery = self.deals.handle_webhook(body, self.sign(body), event_id='evt_1')
        new_delivery = self.deals.handle_webhook(body, self.sign(body), event_id='evt_2')

        self.assertEqual(same_delivery['status'], 'duplicate')
        self.assertEqual(new_delivery['status'], 'noop')
        deal.refresh_from_db()
        self.assertEqual(deal.status, 'escrowed')
        self.assertFalse(Transaction.objects.exists())

    def test_payment_captured_finds_deal_by_order(self):
        deal = self.create_deal()
        body = json.dumps({
            'event': 'payment.captured',
            'payload': {'payment': {'entity': {'id': 'pay_9', 'order_id': deal.escrow_payment_id}}},
        }).encode()

        result = self.deals.handle_webhook(body, self.sign(body))

        self.assertEqual(result['deal_id'], deal.id)
        deal.refresh_from_db()
        self.assertEqual(deal.status, 'escrowed')

    def test_webhook_does_not_move_disputed_deal(self):
        deal = self.create_deal()
        self.disputes.create_dispute(deal.id, self.client_user.id, 'Wrong scope', 'Details')
        body = order_paid_body(deal)

        result = self.deals.handle_webhook(body, self.sign(body))

        self.assertEqual(result['status'], 'noop')
        deal.refresh_from_db()
        self.assertEqual(deal.status, 'dispute')

    def test_unknown_event_is_ignored(self):
        body = json.dumps({'event': 'refund.created', 'payload': {}}).encode()
        result = self.deals.handle_webhook(body, self.sign(body))
        self.assertEqual(result['status'], 'ignored')

    def test_unknown_deal_is_ignored(self):
        body = json.dumps({
            'event': 'order.paid',
            'payload': {'order': {'entity': {'id': 'order_missing', 'notes': {}}}},
        }).encode()
        result = self.deals.handle_webhook(body, self.sign(body))
        self.assertEqual(result['status'], 'ignored')

    def test_bad_signature(self):
        deal = self.create_deal()
        body = order_paid_body(deal)
        with self.assertRaises(IntegrityFailure):
            self.deals.handle_webhook(body, 'deadbeef')
        with self.assertRaises(IntegrityFailure):
            self.deals.handle_webhook(body, None)
        deal.refresh_from_db()
        self.assertEqual(deal.status, 'created')

    def test_missing_secret(self):
        deal = self.create_deal()
        body = order_paid_body(deal)
        service = DealService(config=self.config, gateway=self.gateway, webhook_secret=None)
        with self.assertRaises(IntegrityFailure):
            service.handle_webhook(body, self.sign(body))

    def test_tampered_body(self):
        deal = self.create_deal()
        body = order_paid_body(deal)
        signature = self.sign(body)
        with self.assertRaises(IntegrityFailure):
            self.deals.handle_webhook(body.replace(b'order.paid', b'order.PAID'), signature)


class ConfirmDealTest(DealFixtureMixin, TestCase):
    def test_confirm_scenario(self):
        deal = self.escrowed_deal('400.00')

        result = self.deals.confirm_deal(deal.id, self.client_user.id)

        self.assertEqual(result['platform_fee'], Decimal('40.00'))
        self.assertEqual(result['freelancer_amount'], Decimal('360.00'))
        self.assertEqual(result['deal'].status, 'released')

        wallet = Wallet.objects.get(user=self.freelancer)
        self.assertEqual(wallet.balance, Decimal('360.00'))
        self.assertEqual(WalletLedger.ledger_balance(wallet), wallet.balance)

        rows = Transaction.objects.filter(deal=deal)
        self.assertEqual(
            sorted((row.type, row.amount) for row in rows),
            [('credit', Decimal('360.00')), ('escrow_release', Decimal('400.00')), ('fee', Decimal('40.00'))],
        )

    def test_confirm_uses_existing_wallet(self):
        wallet = WalletLedger.ensure_wallet(self.freelancer)
        WalletLedger.credit(wallet, '5.00', 'Seed')
        deal = self.escrowed_deal('100.00')

        self.deals.confirm_deal(deal.id, self.client_user.id)

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, Decimal('95.00'))

    def test_commission_rate_from_config(self):
        service = DealService(config=MarketplaceConfig(commission_rate=Decimal('0.25')), gateway=self.gateway)
        deal = self.escrowed_deal('400.00')
        result = service.confirm_deal(deal.id, self.client_user.id)
        self.assertEqual(result['platform_fee'], Decimal('100.00'))
        self.assertEqual(result['freelancer_amount'], Decimal('300.00'))

    def test_confirm_requires_escrowed(self):
        deal = self.create_deal()
        with self.assertRaises(InvalidStateError):
            self.deals.confirm_deal(deal.id, self.client_user.id)
        self.assertFalse(Wallet.objects.filter(user=self.freelancer).exists())
        self.assertFalse(Transaction.objects.exists())

    def test_confirm_rejects_wallet_in_other_currency(self):
        deal, _ = self.deals.create_deal(self.client_user.id, self.proposal.id, '400', 'INR')
        self.deals.handle_payment_success(deal.id)
        wallet = WalletLedger.ensure_wallet(self.freelancer, currency='USD')

        with self.assertRaises(InvalidStateError):
            self.deals.confirm_deal(deal.id, self.client_user.id)

        deal.refresh_from_db()
        wallet.refresh_from_db()
        self.assertEqual(deal.status, 'escrowed')
        self.assertEqual(wallet.balance, Decimal('0.00'))
        self.assertFalse(Transaction.objects.filter(deal=deal).exists())

    def test_confirm_twice(self):
        deal = self.escrowed_deal()
        self.deals.confirm_deal(deal.id, self.client_user.id)
        with self.assertRaises(InvalidStateError):
            self.deals.confirm_deal(deal.id, self.client_user.id)
        self.assertEqual(Wallet.objects.get(user=self.freelancer).balance, Decimal('360.00'))

    def test_only_sender_confirms(self):
        deal = self.escrowed_deal()
        with self.assertRaises(ForbiddenError):
            self.deals.confirm_deal(deal.id, self.freelancer.id)

    def test_failure_inside_release_rolls_back(self):
        deal = self.escrowed_deal()
        with mock.patch.object(WalletLedger, 'credit', side_effect=RuntimeError('disk full')):
            with self.assertRaises(RuntimeError):
                self.deals.confirm_deal(deal.id, self.client_user.id)

        deal.refresh_from_db()
        self.assertEqual(deal.status, 'escrowed')
        self.assertFalse(Transaction.objects.filter(deal=deal).exists())

    def test_released_deal_is_terminal(self):
        deal = self.escrowed_deal()
        self.deals.confirm_deal(deal.id, self.client_user.id)
        self.assertTrue(Deal.objects.get(pk=deal.id).is_terminal)
        with self.assertRaisesMessage(InvalidStateError, 'Deal is already released'):
            self.disputes.create_dispute(deal.id, self.client_user.id, 'Late', 'Too late')

    def test_get_deal_visibility(self):
        deal = self.create_deal()
        self.assertEqual(self.deals.get_deal(deal.id, self.freelancer.id), deal)
        self.assertEqual(self.deals.get_deal(deal.id, self.admin.id), deal)
        stranger = make_user('stranger', 'freelancer')
        with self.assertRaises(ForbiddenError):
            self.deals.get_deal(deal.id, stranger.id)
        self.assertEqual(list(self.deals.list_deals(self.freelancer.id)), [deal])


class DisputeTest(DealFixtureMixin, TestCase):
    def open_dispute(self, deal=None, user=None):
        deal = deal or self.escrowed_deal()
        return self.disputes.create_dispute(deal.id, (user or self.client_user).id, 'Not delivered', 'Bot never shipped')

    def test_open_dispute_freezes_deal(self):
        dispute = self.open_dispute(user=self.freelancer)
        self.assertEqual(dispute.status, 'open')
        self.assertEqual(Deal.objects.get(pk=dispute.deal_id).status, 'dispute')

    def test_dispute_allowed_on_created_deal(self):
        dispute = self.open_dispute(deal=self.create_deal())
        self.assertEqual(Deal.objects.get(pk=dispute.deal_id).status, 'dispute')

    def test_second_dispute_rejected(self):
        dispute = self.open_dispute()
        with self.assertRaises(InvalidStateError):
            self.disputes.create_dispute(dispute.deal_id, self.freelancer.id, 'Again', 'Again')
        self.assertEqual(Dispute.objects.count(), 1)

    def test_open_dispute_unique_per_deal(self):
        dispute = self.open_dispute()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Dispute.objects.create(deal=dispute.deal, filed_by=self.freelancer, title='x', description='y')

    def test_only_parties_open_disputes(self):
        deal = self.escrowed_deal()
        stranger = make_user('stranger', 'freelancer')
        with self.assertRaises(ForbiddenError):
            self.disputes.create_dispute(deal.id, stranger.id, 'x', 'y')

    def test_title_and_description_required(self):
        deal = self.escrowed_deal()
        with self.assertRaises(InvalidInputError):
            self.disputes.create_dispute(deal.id, self.client_user.id, '  ', 'y')

    def test_release_credits_freelancer_net_of_commission(self):
        dispute = self.open_dispute()
        result = self.disputes.resolve_dispute(dispute.id, self.admin.id, 'release')

        self.assertEqual(result['deal'].status, 'released')
        self.assertEqual(result['dispute'].resolution, 'release')
        self.assertEqual(result['dispute'].resolved_by, self.admin)
        self.assertIsNotNone(result['dispute'].resolved_at)
        self.assertEqual(result['freelancer_amount'], Decimal('360.00'))

        wallet = Wallet.objects.get(user=self.freelancer)
        self.assertEqual(wallet.balance, Decimal('360.00'))
        self.assertEqual(WalletLedger.ledger_balance(wallet), wallet.balance)

    def test_partial_credits_awarded_amount(self):
        dispute = self.open_dispute()
        result = self.disputes.resolve_dispute(dispute.id, self.admin.id, 'partial', '100.00')

        self.assertEqual(result['deal'].status, 'cancelled')
        self.assertEqual(result['dispute'].awarded_amount, Decimal('100.00'))
        self.assertEqual(result['platform_fee'], Decimal('10.00'))
        self.assertEqual(Wallet.objects.get(user=self.freelancer).balance, Decimal('90.00'))
        release = Transaction.objects.get(deal=dispute.deal, type='escrow_release')
        self.assertEqual(release.amount, Decimal('100.00'))

    def test_return_moves_no_wallet(self):
        dispute = self.open_dispute()
        result = self.disputes.resolve_dispute(dispute.id, self.admin.id, 'return')

        self.assertEqual(result['deal'].status, 'cancelled')
        self.assertIsNone(result['freelancer_amount'])
        self.assertFalse(Wallet.objects.filter(user=self.freelancer).exists())
        rows = Transaction.objects.filter(deal=dispute.deal)
        self.assertEqual([(row.type, row.amount) for row in rows], [('escrow_release', Decimal('400.00'))])

    def test_partial_bounds(self):
        dispute = self.open_dispute()
        for amount in ['0', '400.00', '400.01', '-5']:
            with self.assertRaises(InvalidStateError):
                self.disputes.resolve_dispute(dispute.id, self.admin.id, 'partial', amount)
        with self.assertRaises(InvalidInputError):
            self.disputes.resolve_dispute(dispute.id, self.admin.id, 'partial')
        with self.assertRaises(InvalidInputError):
            self.disputes.resolve_dispute(dispute.id, self.admin.id, 'partial', 'lots')

        dispute.refresh_from_db()
        self.assertEqual(dispute.status, 'open')
        self.assertEqual(dispute.deal.status, 'dispute')

    def test_partial_just_inside_bounds(self):
        dispute = self.open_dispute()
        result = self.disputes.resolve_dispute(dispute.id, self.admin.id, 'partial', '399.99')
        self.assertEqual(result['dispute'].awarded_amount, Decimal('399.99'))

    def test_resolve_requires_admin(self):
        dispute = self.open_dispute()
        with self.assertRaises(ForbiddenError):
            self.disputes.resolve_dispute(dispute.id, self.client_user.id, 'return')

    def test_unknown_resolution(self):
        dispute = self.open_dispute()
        with self.assertRaises(InvalidInputError):
            self.disputes.resolve_dispute(dispute.id, self.admin.id, 'split')

    def test_resolve_twice(self):
        dispute = self.open_dispute()
        self.disputes.resolve_dispute(dispute.id, self.admin.id, 'return')
        with self.assertRaises(InvalidStateError):
            self.disputes.resolve_dispute(dispute.id, self.admin.id, 'release')

    def test_unknown_dispute(self):
        with self.assertRaises(NotFoundError):
            self.disputes.resolve_dispute(9999, self.admin.id, 'return')

    def test_cancelled_deal_is_terminal(self):
        dispute = self.open_dispute()
        self.disputes.resolve_dispute(dispute.id, self.admin.id, 'return')
        with self.assertRaises(InvalidStateError):
            self.deals.confirm_deal(dispute.deal_id, self.client_user.id)
        with self.assertRaises(InvalidStateError):
            self.open_dispute(deal=Deal.objects.get(pk=dispute.deal_id))


class DisputeNotificationTest(DealFixtureMixin, TestCase):
    def test_admins_notified_after_commit(self):
        deal = self.escrowed_deal()
        with override_settings(ADMIN_EMAIL='ops@example.com', ADMIN_USER_ID=self.admin.id):
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                dispute = self.disputes.create_dispute(deal.id, self.client_user.id, 'Not delivered', 'Nothing')

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(f'deal #{deal.id}', mail.outbox[0].subject)
        notification = Notification.objects.get(user=self.admin)
        self.assertEqual(notification.related_model_id, dispute.id)
        self.assertEqual(notification.type, 'Disputes')

    def test_notification_failure_keeps_dispute(self):
        deal = self.escrowed_deal()
        with mock.patch.object(tasks.send_dispute_email, 'delay', side_effect=ConnectionError('broker down')):
            with self.captureOnCommitCallbacks(execute=True):
                dispute = self.disputes.create_dispute(deal.id, self.client_user.id, 'Not delivered', 'Nothing')

        self.assertTrue(Dispute.objects.filter(pk=dispute.pk, status='open').exists())

    def test_tasks_skip_without_configuration(self):
        dispute = self.disputes.create_dispute(self.escrowed_deal().id, self.client_user.id, 't', 'd')
        self.assertIn('skipped', tasks.send_dispute_email(dispute.id))
        self.assertIn('skipped', tasks.create_admin_notification(dispute.id))


class GatewayTest(TestCase):
    def test_in_memory_signature_matches_hmac_sha256(self):
        gateway = InMemoryEscrowGateway()
        body = b'{"event": "order.paid", "payload": {}}'
        event = gateway.verify_webhook(body, InMemoryEscrowGateway.sign(body, 'secret'), 'secret')
        self.assertEqual(event.type, 'order.paid')

    def test_invalid_json_is_integrity_failure(self):
        gateway = InMemoryEscrowGateway()
        body = b'not json'
        with self.assertRaises(IntegrityFailure):
            gateway.verify_webhook(body, InMemoryEscrowGateway.sign(body, 'secret'), 'secret')

    def test_razorpay_requires_credentials(self):
        with self.assertRaises(UpstreamError):
            RazorpayEscrowGateway(None, None, client=mock.Mock())

    def test_razorpay_order_in_minor_units(self):
        client = mock.Mock()
        client.order.create.return_value = {'id': 'order_1', 'amount': 40050, 'currency': 'INR'}
        gateway = RazorpayEscrowGateway('key', 'secret', client=client)

        intent = gateway.create_payment_intent(Decimal('400.50'), 'INR', 'cust_1', {'deal_id': 7})

        payload = client.order.create.call_args.kwargs['data']
        self.assertEqual(payload['amount'], 40050)
        self.assertEqual(payload['notes']['deal_id'], '7')
        self.assertEqual(intent.id, 'order_1')

    def test_razorpay_errors_become_upstream(self):
        client = mock.Mock()
        client.customer.create.side_effect = RuntimeError('401 Unauthorized')
        gateway = RazorpayEscrowGateway('key', 'secret', client=client)
        with self.assertRaises(UpstreamError):
            gateway.create_customer(make_user('c', 'client'))

    @override_settings(ESCROW_GATEWAY_BACKEND='memory')
    def test_factory_returns_memory_gateway(self):
        self.assertIsInstance(get_escrow_gateway(), InMemoryEscrowGateway)


class DealApiTest(DealFixtureMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(self.client_user)

    def post_webhook(self, body, signature, event_id='evt_api'):
        self.client.force_authenticate(None)
        return self.client.post(
            '/api/deals/webhook/razorpay/', data=body, content_type='application/json',
            HTTP_X_RAZORPAY_SIGNATURE=signature, HTTP_X_RAZORPAY_EVENT_ID=event_id,
        )

    def test_full_lifecycle(self):
        response = self.client.post(
            '/api/deals/', {'proposal_id': self.proposal.id, 'amount': '400.00', 'currency': 'USD'}, format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data['client_secret'])
        deal_id = response.data['deal']['id']

        response = self.client.post(f'/api/deals/{deal_id}/confirm/')
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data['code'], 'invalid_state')

        deal = Deal.objects.get(pk=deal_id)
        body = order_paid_body(deal)
        response = self.post_webhook(body, InMemoryEscrowGateway.sign(body, WEBHOOK_SECRET))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'escrowed')

        self.client.force_authenticate(self.client_user)
        response = self.client.post(f'/api/deals/{deal_id}/confirm/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.data['platform_fee']), Decimal('40.00'))
        self.assertEqual(Decimal(response.data['freelancer_amount']), Decimal('360.00'))

    def test_webhook_bad_signature_is_generic(self):
        deal = self.create_deal()
        response = self.post_webhook(order_paid_body(deal), 'forged')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'integrity_failure')
        self.assertEqual(response.data['error'], 'Request signature could not be verified.')

    @override_settings(ESCROW_GATEWAY_BACKEND='carrier-pigeon')
    def test_upstream_failure_is_generic(self):
        response = self.client.post(
            '/api/deals/', {'proposal_id': self.proposal.id, 'amount': '400.00'}, format='json',
        )
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data['code'], 'upstream_failure')
        self.assertNotIn('carrier-pigeon', response.data['error'])
        self.assertFalse(Deal.objects.exists())

    def test_validation_errors_are_invalid_input(self):
        response = self.client.post('/api/deals/', {'amount': '400.00'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_input')

    def test_dispute_endpoints(self):
        deal = self.escrowed_deal()
        response = self.client.post(
            f'/api/deals/{deal.id}/disputes/', {'title': 'Broken', 'description': 'Bot crashes'}, format='json',
        )
        self.assertEqual(response.status_code, 201)
        dispute_id = response.data['id']

        response = self.client.post(f'/api/deals/disputes/{dispute_id}/resolve/', {'resolution': 'return'}, format='json')
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(self.admin)
        response = self.client.post(
            f'/api/deals/disputes/{dispute_id}/resolve/', {'resolution': 'partial', 'amount': '400.00'}, format='json',
        )
        self.assertEqual(response.status_code, 422)

        response = self.client.post(
            f'/api/deals/disputes/{dispute_id}/resolve/', {'resolution': 'partial', 'amount': '200.00'}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['deal']['status'], 'cancelled')

    def test_deal_list_and_detail(self):
        deal = self.create_deal()
        response = self.client.get('/api/deals/')
        self.assertEqual([item['id'] for item in response.data], [deal.id])

        response = self.client.get(f'/api/deals/{deal.id}/')
        self.assertEqual(response.data['status'], 'created')

        response = self.client.get('/api/deals/9999/')
        self.assertEqual(response.status_code, 404)
