from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from core.models import Project, Proposal
from financeapp.models import Transaction, Wallet
from financeapp.services.ledger import WalletLedger

User = get_user_model()


class FreelancerApiTest(APITestCase):
    def setUp(self):
        self.freelancer = User.objects.create_user(username='freelancer', password='pass12345', role='freelancer')
        self.client_user = User.objects.create_user(username='client', password='pass12345', role='client')
        self.project = Project.objects.create(
            client=self.client_user, title='Mini app', description='Catalog', budget=Decimal('700.00'),
        )
        self.client.force_authenticate(self.freelancer)

    def test_submit_proposal(self):
        url = f'/api/freelancer/projects/{self.project.id}/proposals/'
        response = self.client.post(url, {'content': 'Shipped similar apps', 'price': '650.00'}, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['freelancer']['id'], self.freelancer.id)
        self.assertTrue(Proposal.objects.filter(project=self.project, freelancer=self.freelancer).exists())

        response = self.client.post(url, {'content': 'Again', 'price': '600.00'}, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'conflict')

    def test_proposal_requires_price(self):
        url = f'/api/freelancer/projects/{self.project.id}/proposals/'
        response = self.client.post(url, {'content': 'No price'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_input')

    def test_boost_offer(self):
        response = self.client.get('/api/freelancer/boost/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['price'], '15.00')
        self.assertEqual(response.data['days'], 14)
        self.assertFalse(response.data['is_boosted'])

    def test_purchase_boost(self):
        wallet = WalletLedger.ensure_wallet(self.freelancer)
        WalletLedger.credit(wallet, '20.00', 'Seed')

        response = self.client.post('/api/freelancer/boost/purchase/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['charged_amount'], '15.00')
        self.freelancer.refresh_from_db()
        self.assertTrue(self.freelancer.is_boosted)
        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, Decimal('5.00'))
        self.assertTrue(Transaction.objects.filter(wallet=wallet, type='fee', amount=Decimal('15.00')).exists())

    def test_purchase_boost_insufficient_balance(self):
        WalletLedger.ensure_wallet(self.freelancer)
        response = self.client.post('/api/freelancer/boost/purchase/')
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data['error'], 'Insufficient balance. Required 15.00 USD')
        self.assertIsNone(User.objects.get(pk=self.freelancer.pk).boosted_until)

    def test_purchase_boost_without_wallet(self):
        response = self.client.post('/api/freelancer/boost/purchase/')
        self.assertEqual(response.status_code, 404)
        self.assertFalse(Wallet.objects.exists())

    def test_clients_cannot_boost(self):
        self.client.force_authenticate(self.client_user)
        response = self.client.post('/api/freelancer/boost/purchase/')
        self.assertEqual(response.status_code, 403)
