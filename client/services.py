import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from core.repositories import InviteRepository, ProjectRepository, UserRepository
from deals.repositories import DealRepository
from financeapp.config import get_marketplace_config, normalize_plan
from .ranking import (
    CompletedDeal, FreelancerRecord, build_invite_quota, rank_executors,
)

logger = logging.getLogger(__name__)


def to_freelancer_record(user):
    return FreelancerRecord(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar=user.avatar,
        boosted_until=user.boosted_until,
    )


class ExecutorService:
    """Top executors for a project and the plan-limited invites that follow from it"""

    def __init__(self, config=None, users=None, projects=None, invites=None, deals=None):
        self.config = config or get_marketplace_config()
        self.users = users or UserRepository()
        self.projects = projects or ProjectRepository()
        self.invites = invites or InviteRepository()
        self.deals = deals or DealRepository()

    def _owned_project(self, user_id, project_id):
        project = self.projects.get(project_id)
        client = self.users.get(user_id)
        if project.client_id != client.id:
            raise ForbiddenError('Access denied')
        return project, client

    def invite_quota(self, client, used):
        plan = normalize_plan(client.plan)
        return build_invite_quota(plan, self.config.invite_limit_for(plan), used)

    def top_executors(self, user_id, project_id, limit=None, now=None):
        project, client = self._owned_project(user_id, project_id)

        invites = list(self.invites.for_project(project))
        completed = [
            CompletedDeal(
                receiver_id=deal.receiver_id,
                amount=deal.amount,
                skills=frozenset(deal.project.get_skill_set()),
            )
            for deal in self.deals.released()
        ]

        return rank_executors(
            project_id=project.id,
            project_tags=project.skills,
            budget=project.budget,
            freelancers=[to_freelancer_record(user) for user in self.users.freelancers()],
            completed_deals=completed,
            invited_ids=[invite.freelancer_id for invite in invites],
            invite_quota=self.invite_quota(client, len(invites)),
            now=now or timezone.now(),
            limit=limit,
        )

    def list_invites(self, user_id, project_id):
        project, client = self._owned_project(user_id, project_id)
        invites = list(self.invites.for_project(project))
        return invites, self.invite_quota(client, len(invites))

    def invite_freelancer(self, user_id, project_id, freelancer_id, message=''):
        project, client = self._owned_project(user_id, project_id)

        freelancer = self.users.find_by_id(freelancer_id)
        if freelancer is None or freelancer.role != 'freelancer':
            raise NotFoundError('Freelancer not found')

        if self.invites.exists_for(project, freelancer.id):
            raise ConflictError('Freelancer already invited')

        with transaction.atomic():
            # Serialises concurrent invites on the same project so the quota stays exact
            project = self.projects.lock(project)
            used = self.invites.count_for_project(project)
            quota = self.invite_quota(client, used)
            if quota.remaining <= 0:
                raise InvalidStateError(
                    f"Invite limit reached for {quota.plan} plan ({quota.limit} invites per project)"
                )
            try:
                with transaction.atomic():
                    invite = self.invites.create(project, client, freelancer, (message or '')[:500])
            except IntegrityError:
                raise ConflictError('Freelancer already invited')

        logger.info(f"Client {client.id} invited freelancer {freelancer.id} to project {project.id}")
        return invite, self.invite_quota(client, used + 1)
