from datetime import timedelta
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from core.exceptions import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from .config import MarketplaceConfig, parse_boost_price, parse_commission_rate, parse_positive_int
from .models import PayoutRequest, Transaction, Wallet
from .money import round_money, split_commission, to_minor_units
from .services.boost_service import ProfileBoostService
from .services.ledger import WalletLedger
from .services.payout_service import PayoutService
from .tasks import audit_wallet_ledger

User = get_user_model()


def make_user(username, role='freelancer', **extra):
    return User.objects.create_user(username=username, password='pass12345', role=role, **extra)


def funded_wallet(user, amount):
    wallet = WalletLedger.ensure_wallet(user)
    if amount:
        WalletLedger.credit(wallet, amount, 'Seed balance')
    wallet.refresh_from_db()
    return wallet


class MoneyTest(TestCase):
    def test_round_money_is_half_up(self):
        self.assertEqual(round_money('2.345'), Decimal('2.35'))
        self.assertEqual(round_money('2.344'), Decimal('2.34'))
        self.assertEqual(round_money(Decimal('0.005')), Decimal('0.01'))

    def test_round_money_rejects_garbage(self):
        with self.assertRaises(ValueError):
            round_money('ten dollars')

    def test_round_money_rejects_non_finite(self):
        for value in ['NaN', 'Infinity', '-Infinity', Decimal('NaN'), Decimal('sNaN')]:
            with self.assertRaises(ValueError):
                round_money(value)

    def test_minor_units(self):
        self.assertEqual(to_minor_units('400'), 40000)
        self.assertEqual(to_minor_units('19.999'), 2000)

    def test_split_commission_adds_up(self):
        for amount in ['400.00', '0.01', '33.33', '999.99', '10']:
            fee, net = split_commission(amount, Decimal('0.10'))
            self.assertEqual(fee + net, round_money(amount))
            self.assertGreaterEqual(fee, 0)
            self.assertGreaterEqual(net, 0)

    def test_split_commission_scenario(self):
        self.assertEqual(split_commission('400.00', '0.10'), (Decimal('40.00'), Decimal('360.00')))


class MarketplaceConfigTest(TestCase):
    def test_commission_rate_is_clamped(self):
        self.assertEqual(parse_commission_rate('1.5'), Decimal('0.9'))
        self.assertEqual(parse_commission_rate('-0.2'), Decimal('0'))
        self.assertEqual(parse_commission_rate('abc'), Decimal('0.10'))
        self.assertEqual(parse_commission_rate(None), Decimal('0.10'))

    def test_boost_price_and_days_fall_back(self):
        self.assertEqual(parse_boost_price('0'), Decimal('15.00'))
        self.assertEqual(parse_boost_price('9.999'), Decimal('10.00'))
        self.assertEqual(parse_positive_int('0', 14), 14)
        self.assertEqual(parse_positive_int('7.9', 14), 7)

    def test_from_settings_source(self):
        source = SimpleNamespace(
            PLATFORM_COMMISSION_RATE='0.2',
            PROFILE_BOOST_PRICE='20',
            PROFILE_BOOST_DAYS='7',
            INVITE_LIMIT_FREE='1',
            INVITE_LIMIT_PRO='nope',
            INVITE_LIMIT_BUSINESS='30',
            DEFAULT_CURRENCY='eur',
            SUPPORTED_CURRENCIES=['usd', 'eur'],
            DEFAULT_MAX_PROPOSALS='50',
        )
        config = MarketplaceConfig.from_settings(source)
        self.assertEqual(config.commission_rate, Decimal('0.2'))
        self.assertEqual(config.boost_price, Decimal('20.00'))
        self.assertEqual(config.boost_days, 7)
        self.assertEqual(config.invite_limits, {'free': 1, 'pro': 10, 'business': 30})
        self.assertEqual(config.default_currency, 'EUR')
        self.assertEqual(config.supported_currencies, ('USD', 'EUR'))
        self.assertEqual(config.default_max_proposals, 50)

    def test_unknown_plan_uses_free_limit(self):
        config = MarketplaceConfig()
        self.assertEqual(config.invite_limit_for('enterprise'), 3)
        self.assertEqual(config.invite_limit_for('business'), 25)


class WalletLedgerTest(TestCase):
    def setUp(self):
        self.user = make_user('ledger-user')
        self.wallet = WalletLedger.ensure_wallet(self.user)

    def test_ensure_wallet_is_idempotent(self):
        self.assertEqual(WalletLedger.ensure_wallet(self.user).pk, self.wallet.pk)
        self.assertEqual(Wallet.objects.filter(user=self.user).count(), 1)

    def test_credit_and_debit_pair_with_rows(self):
        WalletLedger.credit(self.wallet, '100.00', 'Seed')
        WalletLedger.debit(self.wallet, '30.00', 'withdrawal', 'Cash out')
        self.wallet.refresh_from_db()

        self.assertEqual(self.wallet.balance, Decimal('70.00'))
        self.assertEqual(self.wallet.transactions.count(), 2)
        self.assertEqual(WalletLedger.ledger_balance(self.wallet), Decimal('70.00'))

    def test_debit_never_overdraws(self):
        WalletLedger.credit(self.wallet, '10.00', 'Seed')
        with self.assertRaises(InvalidStateError):
            WalletLedger.debit(self.wallet, '10.01', 'fee', 'Too much')
        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, Decimal('10.00'))
        self.assertEqual(self.wallet.transactions.count(), 1)

    def test_transactions_are_append_only(self):
        tx = WalletLedger.credit(self.wallet, '5.00', 'Seed')
        tx.description = 'Edited'
        with self.assertRaises(ValueError):
            tx.save()
        with self.assertRaises(ValueError):
            tx.delete()

    def test_platform_rows_do_not_affect_wallet_sum(self):
        WalletLedger.credit(self.wallet, '50.00', 'Seed')
        tx = WalletLedger.record('5.00', 'fee', 'Platform commission')
        self.assertIsNone(tx.wallet_id)
        self.assertEqual(tx.signed_amount, Decimal('0.00'))
        self.assertEqual(WalletLedger.ledger_balance(self.wallet), Decimal('50.00'))

    def test_get_wallet_missing(self):
        with self.assertRaises(NotFoundError):
            WalletLedger.get_wallet(make_user('no-wallet'))


class LedgerAuditTest(TestCase):
    def setUp(self):
        self.user = make_user('audited')
        self.wallet = funded_wallet(self.user, '40.00')

    def test_consistent_ledger_passes(self):
        self.assertEqual(WalletLedger.find_inconsistent_wallets(), [])
        self.assertEqual(audit_wallet_ledger(), 0)

    def test_drift_is_reported(self):
        # Simulates an out-of-band write the ledger cannot explain
        Wallet.objects.filter(pk=self.wallet.pk).update(balance=Decimal('41.00'))

        mismatches = WalletLedger.find_inconsistent_wallets()
        self.assertEqual(len(mismatches), 1)
        self.assertEqual(mismatches[0][1], Decimal('40.00'))
        self.assertEqual(audit_wallet_ledger(), 1)

        out = StringIO()
        call_command('audit_wallets', stdout=out)
        self.assertIn('1 wallet(s) out of balance', out.getvalue())

    def test_command_reports_clean_ledger(self):
        out = StringIO()
        call_command('audit_wallets', stdout=out)
        self.assertIn('All wallets match their ledger', out.getvalue())


class PayoutServiceTest(TestCase):
    def setUp(self):
        self.service = PayoutService(config=MarketplaceConfig())
        self.freelancer = make_user('payout-freelancer')
        self.admin = make_user('payout-admin', role='admin')
        self.wallet = funded_wallet(self.freelancer, '245.00')

    def test_payout_scenario(self):
        payout = self.service.create_payout_request(self.freelancer.id, '100.00')
        self.wallet.refresh_from_db()

        self.assertEqual(payout.status, 'pending')
        self.assertEqual(payout.fee, Decimal('2.50'))
        self.assertEqual(self.wallet.balance, Decimal('145.00'))

        rows = Transaction.objects.filter(payout_request=payout)
        self.assertEqual(
            sorted((row.type, row.amount) for row in rows),
            [('fee', Decimal('2.50')), ('withdrawal', Decimal('100.00'))],
        )
        self.assertEqual(WalletLedger.ledger_balance(self.wallet), self.wallet.balance)

    def test_insufficient_balance(self):
        with self.assertRaises(InvalidStateError):
            self.service.create_payout_request(self.freelancer.id, '245.01')
        self.assertFalse(PayoutRequest.objects.exists())

    def test_non_positive_amount(self):
        for amount in ['0', '-5', 'abc']:
            with self.assertRaises(InvalidInputError):
                self.service.create_payout_request(self.freelancer.id, amount)

    def test_only_freelancers_request_payouts(self):
        client = make_user('payout-client', role='client')
        with self.assertRaises(ForbiddenError):
            self.service.create_payout_request(client.id, '10')

    def test_missing_wallet(self):
        other = make_user('walletless')
        with self.assertRaises(NotFoundError):
            self.service.create_payout_request(other.id, '10')

    def test_process_payout_once(self):
        payout = self.service.create_payout_request(self.freelancer.id, '100.00')

        processed = self.service.process_payout(payout.id, self.admin.id)
        self.assertEqual(processed.status, 'processed')
        self.assertIsNotNone(processed.processed_at)

        with self.assertRaises(InvalidStateError):
            self.service.process_payout(payout.id, self.admin.id)

        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, Decimal('145.00'))

    def test_process_requires_admin(self):
        payout = self.service.create_payout_request(self.freelancer.id, '10.00')
        with self.assertRaises(ForbiddenError):
            self.service.process_payout(payout.id, self.freelancer.id)

    def test_process_unknown_payout(self):
        with self.assertRaises(NotFoundError):
            self.service.process_payout(9999, self.admin.id)


class ProfileBoostServiceTest(TestCase):
    def setUp(self):
        self.service = ProfileBoostService(config=MarketplaceConfig())
        self.freelancer = make_user('boosted')
        self.wallet = funded_wallet(self.freelancer, '360.00')

    def test_boost_scenario(self):
        now = timezone.now()
        result = self.service.purchase(self.freelancer.id, now=now)

        self.wallet.refresh_from_db()
        self.freelancer.refresh_from_db()
        self.assertEqual(self.wallet.balance, Decimal('345.00'))
        self.assertEqual(result['charged_amount'], Decimal('15.00'))
        self.assertEqual(result['boost_days'], 14)
        self.assertEqual(self.freelancer.boosted_until, now + timedelta(days=14))
        self.assertEqual(self.wallet.transactions.filter(type='fee').count(), 1)

    def test_active_boost_stacks(self):
        now = timezone.now()
        first = self.service.purchase(self.freelancer.id, now=now)
        second = self.service.purchase(self.freelancer.id, now=now + timedelta(days=1))
        self.assertEqual(second['boosted_until'], first['boosted_until'] + timedelta(days=14))

    def test_expired_boost_restarts_from_now(self):
        now = timezone.now()
        User.objects.filter(pk=self.freelancer.pk).update(boosted_until=now - timedelta(days=3))
        result = self.service.purchase(self.freelancer.id, now=now)
        self.assertEqual(result['boosted_until'], now + timedelta(days=14))

    def test_insufficient_balance(self):
        poor = make_user('poor')
        funded_wallet(poor, '14.99')
        with self.assertRaisesMessage(InvalidStateError, 'Required 15.00 USD'):
            self.service.purchase(poor.id)
        poor.refresh_from_db()
        self.assertIsNone(poor.boosted_until)

    def test_only_freelancers(self):
        client = make_user('boost-client', role='client')
        with self.assertRaises(ForbiddenError):
            self.service.purchase(client.id)

    def test_configured_price_and_days(self):
        service = ProfileBoostService(config=MarketplaceConfig(boost_price=Decimal('20.00'), boost_days=7))
        self.assertEqual(service.get_offer(), {'price': Decimal('20.00'), 'days': 7, 'currency': 'USD'})


class WalletApiTest(APITestCase):
    def setUp(self):
        self.freelancer = make_user('api-freelancer')
        self.admin = make_user('api-admin', role='admin')
        funded_wallet(self.freelancer, '245.00')
        self.client.force_authenticate(self.freelancer)

    def test_balance(self):
        response = self.client.get('/api/finance/wallet/balance/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['balance'], '245.00')
        self.assertEqual(len(response.data['recent_transactions']), 1)

    def test_balance_without_wallet(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get('/api/finance/wallet/balance/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'error': 'Wallet not found', 'code': 'not_found'})

    def test_history_filters_by_type(self):
        self.client.post('/api/finance/payouts/', {'amount': '100.00'}, format='json')
        response = self.client.get('/api/finance/wallet/transactions/?type=withdrawal')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total_count'], 1)
        self.assertEqual(response.data['transactions'][0]['signed_amount'], '-100.00')

        response = self.client.get('/api/finance/wallet/transactions/?type=bogus')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_input')

    def test_payout_flow(self):
        response = self.client.post('/api/finance/payouts/', {'amount': '100.00'}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['payout']['fee'], '2.50')
        self.assertEqual(response.data['new_balance'], '145.00')

        payout_id = response.data['payout']['id']
        response = self.client.post(f'/api/finance/payouts/{payout_id}/process/')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'forbidden')

        self.client.force_authenticate(self.admin)
        response = self.client.post(f'/api/finance/payouts/{payout_id}/process/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['payout']['status'], 'processed')

        response = self.client.post(f'/api/finance/payouts/{payout_id}/process/')
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data['code'], 'invalid_state')

    def test_payout_requires_amount(self):
        response = self.client.post('/api/finance/payouts/', {}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_payout_rejects_non_finite_amount(self):
        for amount in ['NaN', 'Infinity', '-Infinity']:
            response = self.client.post('/api/finance/payouts/', {'amount': amount}, format='json')
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.data['code'], 'invalid_input')
        self.assertEqual(Wallet.objects.get(user=self.freelancer).balance, Decimal('245.00'))

    def test_payout_history(self):
        self.client.post('/api/finance/payouts/', {'amount': '10.00'}, format='json')
        response = self.client.get('/api/finance/payouts/')
        self.assertEqual(len(response.data['payouts']), 1)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.get('/api/finance/wallet/balance/')
        self.assertEqual(response.status_code, 401)
