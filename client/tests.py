from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from core.exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from core.models import Project, ProjectInvite, Proposal
from deals.models import Deal
from financeapp.config import MarketplaceConfig
from .ranking import (
    CompletedDeal, FreelancerRecord, InviteQuota, clamp_limit, normalize_tags, rank_executors, round1,
)
from .services import ExecutorService

User = get_user_model()

NOW = timezone.now()
QUOTA = InviteQuota(plan='free', limit=3, used=0)


def record(freelancer_id, boosted_until=None):
    return FreelancerRecord(id=freelancer_id, username=f"f{freelancer_id}", boosted_until=boosted_until)


def done(freelancer_id, amount, *skills):
    return CompletedDeal(receiver_id=freelancer_id, amount=Decimal(amount), skills=normalize_tags(skills))


def rank(freelancers, deals=(), tags=('telegram',), budget='500', invited=(), limit=5):
    return rank_executors(
        project_id=1,
        project_tags=tags,
        budget=Decimal(budget),
        freelancers=freelancers,
        completed_deals=deals,
        invited_ids=invited,
        invite_quota=QUOTA,
        now=NOW,
        limit=limit,
    )


class RankingTest(SimpleTestCase):
    def test_matching_deal_on_budget(self):
        result = rank([record(1)], [done(1, '500', 'Telegram')])
        executor = result.recommended[0]
        self.assertEqual(executor.score, Decimal('60.6'))
        self.assertEqual(executor.completed_deals, 1)
        self.assertEqual(executor.matched_skill_deals, 1)
        self.assertEqual(executor.average_amount, Decimal('500.00'))

    def test_newcomer_scores(self):
        self.assertEqual(rank([record(1)], tags=()).recommended[0].score, Decimal('10.0'))
        self.assertEqual(rank([record(1)]).recommended[0].score, Decimal('0.0'))

    def test_completed_deals_saturate(self):
        deals = [done(1, '500', 'telegram') for _ in range(12)]
        self.assertEqual(rank([record(1)], deals).recommended[0].score, Decimal('100.0'))

    def test_boost_only_while_active(self):
        active = record(1, boosted_until=NOW + timedelta(days=1))
        expired = record(2, boosted_until=NOW - timedelta(seconds=1))
        result = rank([expired, active])

        self.assertEqual([item.freelancer.id for item in result.recommended], [1, 2])
        self.assertTrue(result.recommended[0].is_boosted)
        self.assertEqual(result.recommended[0].score, Decimal('15.0'))
        self.assertFalse(result.recommended[1].is_boosted)

    def test_tie_broken_by_completed_deals(self):
        boosted_newcomer = record(1, boosted_until=NOW + timedelta(days=3))
        veteran = record(2)
        result = rank([boosted_newcomer, veteran], [done(2, '468.75', 'php')], budget='1000')

        scores = [item.score for item in result.recommended]
        self.assertEqual(scores, [Decimal('15.0'), Decimal('15.0')])
        self.assertEqual(result.recommended[0].freelancer.id, 2)

    def test_budget_fit_never_negative(self):
        result = rank([record(1)], [done(1, '5000', 'python')], budget='100')
        self.assertEqual(result.recommended[0].score, Decimal('5.6'))

    def test_zero_budget_uses_unit_denominator(self):
        result = rank([record(1)], [done(1, '0.50', 'telegram')], budget='0')
        # 5.625 + 35 + (1 - 0.5) * 20
        self.assertEqual(result.recommended[0].score, Decimal('50.6'))

    def test_invited_flag_and_totals(self):
        result = rank([record(1), record(2), record(3)], invited=[2], limit=2)
        self.assertEqual(result.total_candidates, 3)
        self.assertEqual(len(result.recommended), 2)
        invited = {item.freelancer.id: item.already_invited for item in result.recommended}
        self.assertEqual(invited, {1: False, 2: True})

    def test_clamp_limit(self):
        self.assertEqual(clamp_limit(None), 5)
        self.assertEqual(clamp_limit('abc'), 5)
        self.assertEqual(clamp_limit('0'), 1)
        self.assertEqual(clamp_limit(-3), 1)
        self.assertEqual(clamp_limit('7'), 7)
        self.assertEqual(clamp_limit(500), 20)

    def test_round1_is_half_up(self):
        self.assertEqual(round1(Decimal('0.25')), Decimal('0.3'))
        self.assertEqual(round1(Decimal('60.625')), Decimal('60.6'))
        self.assertEqual(round1(Decimal('2.35')), Decimal('2.4'))

    def test_quota_remaining(self):
        self.assertEqual(InviteQuota(plan='free', limit=3, used=5).remaining, 0)
        self.assertEqual(InviteQuota(plan='pro', limit=10, used=4).as_dict()['remaining'], 6)

    def test_as_dict(self):
        data = rank([record(1)], [done(1, '500', 'telegram')]).recommended[0].as_dict()
        self.assertEqual(data['score'], 60.6)
        self.assertEqual(data['stats'], {'completed_deals': 1, 'matched_skill_deals': 1, 'average_amount': '500.00'})
        self.assertIsNone(data['boosted_until'])


class ExecutorFixtureMixin:
    def setUp(self):
        self.client_user = User.objects.create_user(username='client', password='pass12345', role='client')
        self.project = Project.objects.create(
            client=self.client_user, title='Telegram bot', description='Support bot',
            budget=Decimal('500.00'), skills=['telegram'],
        )
        self.freelancers = [
            User.objects.create_user(username=f'freelancer{i}', password='pass12345', role='freelancer')
            for i in range(5)
        ]
        self.service = ExecutorService(config=MarketplaceConfig(invite_limits={'free': 3, 'pro': 10, 'business': 25}))

    def release_deal(self, freelancer, amount='500.00', skills=('telegram',)):
        project = Project.objects.create(
            client=self.client_user, title='Earlier job', description='Done', budget=amount, skills=list(skills),
        )
        proposal = Proposal.objects.create(project=project, freelancer=freelancer, content='x', price=amount)
        return Deal.objects.create(
            project=project, proposal=proposal, sender=self.client_user, receiver=freelancer,
            amount=Decimal(amount), status='released',
        )


class ExecutorServiceTest(ExecutorFixtureMixin, TestCase):
    def test_top_executors_uses_released_deals(self):
        veteran = self.freelancers[3]
        self.release_deal(veteran)
        unreleased = self.release_deal(self.freelancers[4])
        Deal.objects.filter(pk=unreleased.pk).update(status='escrowed')

        result = self.service.top_executors(self.client_user.id, self.project.id, limit=2)

        self.assertEqual(result.total_candidates, 5)
        self.assertEqual(result.recommended[0].freelancer.id, veteran.id)
        self.assertEqual(result.recommended[0].score, Decimal('60.6'))
        self.assertEqual(result.recommended[1].completed_deals, 0)
        self.assertEqual(result.invite_quota.as_dict(), {'plan': 'free', 'limit': 3, 'used': 0, 'remaining': 3})

    def test_released_deal_tags_are_normalised(self):
        veteran = self.freelancers[1]
        self.release_deal(veteran, skills=(' Telegram ', ''))
        result = self.service.top_executors(self.client_user.id, self.project.id, limit=1)
        self.assertEqual(result.recommended[0].freelancer.id, veteran.id)
        self.assertEqual(result.recommended[0].matched_skill_deals, 1)

    def test_only_owner_sees_ranking(self):
        other = User.objects.create_user(username='other', password='pass12345', role='client')
        with self.assertRaises(ForbiddenError):
            self.service.top_executors(other.id, self.project.id)
        with self.assertRaises(NotFoundError):
            self.service.top_executors(self.client_user.id, 9999)

    def test_invite_quota_per_plan(self):
        for freelancer in self.freelancers[:3]:
            _, quota = self.service.invite_freelancer(self.client_user.id, self.project.id, freelancer.id)
        self.assertEqual(quota.remaining, 0)

        with self.assertRaises(InvalidStateError):
            self.service.invite_freelancer(self.client_user.id, self.project.id, self.freelancers[3].id)
        self.assertEqual(ProjectInvite.objects.count(), 3)

        User.objects.filter(pk=self.client_user.pk).update(plan='pro')
        invite, quota = self.service.invite_freelancer(self.client_user.id, self.project.id, self.freelancers[3].id)
        self.assertEqual(quota.as_dict(), {'plan': 'pro', 'limit': 10, 'used': 4, 'remaining': 6})
        self.assertEqual(invite.client, self.client_user)

    def test_unknown_plan_counts_as_free(self):
        User.objects.filter(pk=self.client_user.pk).update(plan='enterprise')
        _, quota = self.service.list_invites(self.client_user.id, self.project.id)
        self.assertEqual(quota.plan, 'free')
        self.assertEqual(quota.limit, 3)

    def test_duplicate_invite(self):
        freelancer = self.freelancers[0]
        self.service.invite_freelancer(self.client_user.id, self.project.id, freelancer.id, 'Hi')
        with self.assertRaises(ConflictError):
            self.service.invite_freelancer(self.client_user.id, self.project.id, freelancer.id)

    def test_invite_target_must_be_freelancer(self):
        with self.assertRaises(NotFoundError):
            self.service.invite_freelancer(self.client_user.id, self.project.id, self.client_user.id)
        with self.assertRaises(NotFoundError):
            self.service.invite_freelancer(self.client_user.id, self.project.id, 9999)

    def test_invited_flag_in_ranking(self):
        target = self.freelancers[0]
        self.service.invite_freelancer(self.client_user.id, self.project.id, target.id)
        result = self.service.top_executors(self.client_user.id, self.project.id, limit=20)
        flags = {item.freelancer.id: item.already_invited for item in result.recommended}
        self.assertTrue(flags[target.id])
        self.assertEqual(sum(flags.values()), 1)
        self.assertEqual(result.invite_quota.used, 1)


class ExecutorApiTest(ExecutorFixtureMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(self.client_user)

    def test_top_executors_endpoint(self):
        self.release_deal(self.freelancers[2])
        response = self.client.get(f'/api/client/projects/{self.project.id}/top-executors/?limit=abc')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['project_id'], self.project.id)
        self.assertEqual(len(response.data['recommended']), 5)
        self.assertEqual(response.data['recommended'][0]['id'], self.freelancers[2].id)
        self.assertEqual(response.data['invite_quota']['remaining'], 3)

    def test_invite_endpoints(self):
        url = f'/api/client/projects/{self.project.id}/invites/'
        response = self.client.post(url, {'freelancer_id': self.freelancers[0].id, 'message': 'Join us'}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['invite']['freelancer']['id'], self.freelancers[0].id)
        self.assertEqual(response.data['invite_quota']['used'], 1)

        response = self.client.post(url, {'freelancer_id': self.freelancers[0].id}, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'conflict')

        response = self.client.get(url)
        self.assertEqual(len(response.data['invites']), 1)

    def test_quota_exhausted_is_unprocessable(self):
        url = f'/api/client/projects/{self.project.id}/invites/'
        for freelancer in self.freelancers[:3]:
            self.client.post(url, {'freelancer_id': freelancer.id}, format='json')
        response = self.client.post(url, {'freelancer_id': self.freelancers[3].id}, format='json')
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data['code'], 'invalid_state')
