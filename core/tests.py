from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APITestCase

from financeapp.config import MarketplaceConfig
from financeapp.services.ledger import WalletLedger
from .exceptions import ConflictError, ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from .models import Notification, Project, Proposal
from .services.project_service import ProjectService, build_auto_tags, build_brief

User = get_user_model()


class AutoTagTest(SimpleTestCase):
    def test_manual_skills_come_first(self):
        tags = build_auto_tags({
            'title': 'Telegram bot with Stripe',
            'description': 'Sell courses',
            'skills': [' Python ', 'telegram'],
        })
        self.assertEqual(tags[:2], ['python', 'telegram'])
        self.assertIn('payments', tags)
        self.assertEqual(len(tags), len(set(tags)))

    def test_integrations_and_automation_type(self):
        tags = build_auto_tags({
            'title': 'Lead pipeline',
            'description': 'Push leads somewhere',
            'automation_type': 'automation_pipeline',
            'integrations': ['Google Sheets', 'n8n'],
        })
        self.assertIn('google-sheets', tags)
        self.assertIn('workflow-automation', tags)
        self.assertIn('automation_pipeline', tags)
        self.assertIn('n8n', tags)

    def test_tags_are_capped(self):
        tags = build_auto_tags({'title': 'x', 'description': 'y', 'skills': [f'skill{i}' for i in range(30)]})
        self.assertEqual(len(tags), 20)

    def test_brief(self):
        brief = build_brief({
            'automation_type': 'telegram_bot',
            'main_goal': 'Take orders',
            'integrations': ['crm', 'sheets'],
            'deadline_days': 10,
            'support_needed': False,
        })
        self.assertEqual(brief.splitlines(), [
            'Automation brief:',
            '- Type: telegram_bot',
            '- Main goal: Take orders',
            '- Integrations: crm, sheets',
            '- Deadline target: 10 days',
            '- Post-launch support: not required',
        ])
        self.assertEqual(build_brief({'title': 'x'}), '')


class ProjectServiceTest(TestCase):
    def setUp(self):
        self.client_user = User.objects.create_user(username='client', password='pass12345', role='client')
        self.freelancer = User.objects.create_user(username='freelancer', password='pass12345', role='freelancer')
        self.service = ProjectService(config=MarketplaceConfig(default_max_proposals=2))
        self.project = self.service.create_project(self.client_user.id, {
            'title': 'Support bot',
            'description': 'Answer FAQ in Telegram ',
            'budget': Decimal('300'),
            'main_goal': 'Cut support load',
        })

    def test_create_project(self):
        self.assertEqual(self.project.client, self.client_user)
        self.assertEqual(self.project.budget, Decimal('300.00'))
        self.assertIn('telegram', self.project.skills)
        self.assertTrue(self.project.description.startswith('Answer FAQ in Telegram\n\nAutomation brief:'))

    def test_skill_set_is_normalised(self):
        project = Project(skills=[' Python', 'python', 'CRM ', ''])
        self.assertEqual(project.get_skill_set(), {'python', 'crm'})

    def test_only_clients_create_projects(self):
        with self.assertRaises(ForbiddenError):
            self.service.create_project(self.freelancer.id, {'title': 'x', 'description': 'y'})

    def test_submit_proposal(self):
        proposal = self.service.submit_proposal(self.freelancer.id, self.project.id, 'I built ten of these', '250')
        self.assertEqual(proposal.price, Decimal('250.00'))
        self.assertEqual(proposal.freelancer, self.freelancer)

    def test_duplicate_proposal(self):
        self.service.submit_proposal(self.freelancer.id, self.project.id, 'First', '250')
        with self.assertRaises(ConflictError):
            self.service.submit_proposal(self.freelancer.id, self.project.id, 'Second', '200')

    def test_proposal_limit(self):
        for i in range(2):
            other = User.objects.create_user(username=f'f{i}', password='pass12345', role='freelancer')
            self.service.submit_proposal(other.id, self.project.id, 'Offer', '100')
        with self.assertRaises(InvalidStateError):
            self.service.submit_proposal(self.freelancer.id, self.project.id, 'Late', '100')

    def test_project_limit_overrides_default(self):
        Project.objects.filter(pk=self.project.pk).update(max_proposals=1)
        self.service.submit_proposal(self.freelancer.id, self.project.id, 'Offer', '100')
        other = User.objects.create_user(username='other', password='pass12345', role='freelancer')
        with self.assertRaises(InvalidStateError):
            self.service.submit_proposal(other.id, self.project.id, 'Offer', '100')

    def test_proposal_validation(self):
        with self.assertRaises(ForbiddenError):
            self.service.submit_proposal(self.client_user.id, self.project.id, 'Offer', '100')
        with self.assertRaises(InvalidInputError):
            self.service.submit_proposal(self.freelancer.id, self.project.id, 'Offer', '-1')
        with self.assertRaises(NotFoundError):
            self.service.submit_proposal(self.freelancer.id, 9999, 'Offer', '100')

    def test_list_proposals_owner_only(self):
        self.service.submit_proposal(self.freelancer.id, self.project.id, 'Offer', '100')
        self.assertEqual(len(self.service.list_proposals(self.client_user.id, self.project.id)), 1)
        with self.assertRaises(ForbiddenError):
            self.service.list_proposals(self.freelancer.id, self.project.id)


class CoreApiTest(APITestCase):
    def setUp(self):
        self.client_user = User.objects.create_user(username='client', password='pass12345', role='client')
        self.freelancer = User.objects.create_user(
            username='freelancer', password='pass12345', role='freelancer', first_name='Ada',
        )

    def test_current_user_with_wallet(self):
        wallet = WalletLedger.ensure_wallet(self.freelancer)
        WalletLedger.credit(wallet, '12.50', 'Seed')
        self.client.force_authenticate(User.objects.get(pk=self.freelancer.pk))

        response = self.client.get('/api/users/me/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['display_name'], 'Ada')
        self.assertEqual(response.data['role'], 'freelancer')
        self.assertFalse(response.data['is_boosted'])
        self.assertEqual(response.data['wallet']['balance'], '12.50')

    def test_current_user_without_wallet(self):
        self.client.force_authenticate(self.client_user)
        response = self.client.get('/api/users/me/')
        self.assertIsNone(response.data['wallet'])

    def test_update_profile(self):
        self.client.force_authenticate(self.freelancer)
        response = self.client.put('/api/users/me/', {
            'first_name': 'Grace',
            'bio': 'Telegram bots and n8n pipelines',
            'role': 'admin',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['first_name'], 'Grace')
        self.assertEqual(response.data['bio'], 'Telegram bots and n8n pipelines')
        user = User.objects.get(pk=self.freelancer.pk)
        self.assertEqual((user.first_name, user.last_name, user.role), ('Grace', '', 'freelancer'))

    def test_update_profile_keeps_omitted_fields(self):
        User.objects.filter(pk=self.freelancer.pk).update(last_name='Lovelace', bio='Old bio')
        self.client.force_authenticate(User.objects.get(pk=self.freelancer.pk))

        response = self.client.put('/api/users/me/', {'last_name': 'Byron'}, format='json')

        self.assertEqual(response.status_code, 200)
        user = User.objects.get(pk=self.freelancer.pk)
        self.assertEqual((user.first_name, user.last_name, user.bio), ('Ada', 'Byron', 'Old bio'))

    def test_update_profile_validation(self):
        self.client.force_authenticate(self.freelancer)
        response = self.client.put('/api/users/me/', {'first_name': 'x' * 200}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_input')

    def test_unauthenticated_error_shape(self):
        response = self.client.get('/api/users/me/')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(set(response.data), {'error', 'code'})

    def test_create_and_read_project(self):
        self.client.force_authenticate(self.client_user)
        response = self.client.post('/api/projects/', {
            'title': 'CRM sync',
            'description': 'Sync leads to amoCRM',
            'budget': '800.00',
            'integrations': ['amoCRM'],
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertIn('crm', response.data['skills'])

        response = self.client.get(f"/api/projects/{response.data['id']}/")
        self.assertEqual(response.data['client']['id'], self.client_user.id)

        response = self.client.get('/api/projects/9999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'error': 'Project not found', 'code': 'not_found'})

    def test_freelancer_cannot_create_project(self):
        self.client.force_authenticate(self.freelancer)
        response = self.client.post('/api/projects/', {'title': 'x', 'description': 'y'}, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'forbidden')

    def test_project_proposals_for_owner(self):
        project = Project.objects.create(client=self.client_user, title='Bot', description='d', budget=100)
        Proposal.objects.create(project=project, freelancer=self.freelancer, content='Offer', price=90)

        self.client.force_authenticate(self.client_user)
        response = self.client.get(f'/api/projects/{project.id}/proposals/')
        self.assertEqual([item['freelancer']['username'] for item in response.data], ['freelancer'])

        self.client.force_authenticate(self.freelancer)
        response = self.client.get(f'/api/projects/{project.id}/proposals/')
        self.assertEqual(response.status_code, 403)

    def test_notifications(self):
        notification = Notification.objects.create(
            user=self.freelancer, type='System', title='Hello', notification_text='Welcome',
        )
        self.client.force_authenticate(self.freelancer)

        response = self.client.get('/api/notifications/?unread=1')
        self.assertEqual([item['id'] for item in response.data], [notification.id])

        response = self.client.patch(f'/api/notifications/{notification.id}/mark-as-read/')
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get('/api/notifications/?unread=1').data, [])
