"""
Typed access to core entities.

Engines depend on these instead of building ORM queries inline, which keeps
their rules readable and gives tests one seam to reason about.
"""
from django.contrib.auth import get_user_model

from .exceptions import NotFoundError
from .models import Project, Proposal, ProjectInvite

User = get_user_model()


class UserRepository:

    @staticmethod
    def find_by_id(user_id):
        try:
            return User.objects.get(pk=user_id)
        except (User.DoesNotExist, ValueError, TypeError):
            return None

    def get(self, user_id, message='User not found'):
        user = self.find_by_id(user_id)
        if user is None:
            raise NotFoundError(message)
        return user

    @staticmethod
    def set_gateway_customer_id(user, customer_id):
        User.objects.filter(pk=user.pk).update(gateway_customer_id=customer_id)
        user.gateway_customer_id = customer_id
        return user

    @staticmethod
    def set_boosted_until(user, boosted_until):
        User.objects.filter(pk=user.pk).update(boosted_until=boosted_until)
        user.boosted_until = boosted_until
        return user

    @staticmethod
    def freelancers():
        return User.objects.filter(role='freelancer').order_by('id')


class ProjectRepository:

    @staticmethod
    def find_by_id(project_id):
        try:
            return Project.objects.select_related('client').get(pk=project_id)
        except (Project.DoesNotExist, ValueError, TypeError):
            return None

    def get(self, project_id):
        project = self.find_by_id(project_id)
        if project is None:
            raise NotFoundError('Project not found')
        return project

    @staticmethod
    def lock(project):
        """Row-lock a project inside the surrounding transaction"""
        return Project.objects.select_for_update().get(pk=project.pk)

    @staticmethod
    def create(**fields):
        return Project.objects.create(**fields)


class ProposalRepository:

    @staticmethod
    def find_by_id(proposal_id):
        try:
            return Proposal.objects.select_related('project', 'project__client', 'freelancer').get(pk=proposal_id)
        except (Proposal.DoesNotExist, ValueError, TypeError):
            return None

    @staticmethod
    def exists_for(project, freelancer):
        return Proposal.objects.filter(project=project, freelancer=freelancer).exists()

    @staticmethod
    def count_for_project(project):
        return Proposal.objects.filter(project=project).count()

    @staticmethod
    def for_project(project):
        return Proposal.objects.filter(project=project).select_related('freelancer').order_by('-created_at')

    @staticmethod
    def create(project, freelancer, content, price):
        return Proposal.objects.create(project=project, freelancer=freelancer, content=content, price=price)


class InviteRepository:

    @staticmethod
    def for_project(project):
        return ProjectInvite.objects.filter(project=project).select_related('freelancer').order_by('-created_at')

    @staticmethod
    def count_for_project(project):
        return ProjectInvite.objects.filter(project=project).count()

    @staticmethod
    def exists_for(project, freelancer_id):
        return ProjectInvite.objects.filter(project=project, freelancer_id=freelancer_id).exists()

    @staticmethod
    def create(project, client, freelancer, message=''):
        return ProjectInvite.objects.create(project=project, client=client, freelancer=freelancer, message=message)
