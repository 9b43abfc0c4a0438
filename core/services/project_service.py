import logging

from django.db import IntegrityError, transaction

from ..exceptions import ConflictError, ForbiddenError, InvalidInputError, InvalidStateError
from ..repositories import ProjectRepository, ProposalRepository, UserRepository
from financeapp.config import get_marketplace_config
from financeapp.money import round_money

logger = logging.getLogger(__name__)

MAX_PROJECT_TAGS = 20

# Keyword -> tag rules applied to the project text
TAG_MATCHERS = [
    (['telegram', 'tg', 'bot'], 'telegram'),
    (['mini app', 'miniapp', 'mini-app'], 'telegram-mini-app'),
    (['ai', 'gpt', 'openai', 'llm'], 'ai-automation'),
    (['crm', 'bitrix', 'amo'], 'crm'),
    (['stripe', 'payment', 'pay'], 'payments'),
    (['webhook'], 'webhooks'),
    (['google sheets', 'sheets'], 'google-sheets'),
    (['n8n', 'make.com', 'zapier'], 'workflow-automation'),
    (['python'], 'python'),
    (['node', 'nestjs', 'typescript'], 'nodejs'),
    (['php', 'laravel'], 'php'),
]


def sanitize_skill(value):
    return str(value).strip().lower()


def build_auto_tags(data):
    """Manual skills first, then tags derived from the brief, unique and capped"""
    manual = [sanitize_skill(skill) for skill in data.get('skills') or []]

    text = ' '.join([
        data.get('title') or '',
        data.get('description') or '',
        data.get('main_goal') or '',
        ' '.join(data.get('integrations') or []),
        data.get('bot_stage') or '',
        data.get('automation_type') or '',
    ]).lower()

    auto = [tag for patterns, tag in TAG_MATCHERS if any(pattern in text for pattern in patterns)]

    if data.get('automation_type'):
        auto.append(sanitize_skill(data['automation_type']))
    for integration in data.get('integrations') or []:
        auto.append(sanitize_skill(integration))

    unique = []
    for tag in manual + auto:
        if tag and tag not in unique:
            unique.append(tag)
    return unique[:MAX_PROJECT_TAGS]


def build_brief(data):
    lines = []
    if data.get('automation_type'):
        lines.append(f"Type: {data['automation_type']}")
    if data.get('bot_stage'):
        lines.append(f"Stage: {data['bot_stage']}")
    if data.get('main_goal'):
        lines.append(f"Main goal: {data['main_goal']}")
    if data.get('integrations'):
        lines.append(f"Integrations: {', '.join(data['integrations'])}")
    if data.get('deadline_days'):
        lines.append(f"Deadline target: {data['deadline_days']} days")
    if data.get('support_needed') is not None:
        lines.append(f"Post-launch support: {'required' if data['support_needed'] else 'not required'}")

    if not lines:
        return ''
    return '\n'.join(['Automation brief:'] + [f"- {line}" for line in lines])


class ProjectService:

    def __init__(self, config=None, users=None, projects=None, proposals=None):
        self.config = config or get_marketplace_config()
        self.users = users or UserRepository()
        self.projects = projects or ProjectRepository()
        self.proposals = proposals or ProposalRepository()

    def create_project(self, user_id, data):
        user = self.users.get(user_id)
        if user.role != 'client':
            raise ForbiddenError('Only clients can create projects')

        brief = build_brief(data)
        description = data['description'].strip()
        if brief:
            description = f"{description}\n\n{brief}"

        project = self.projects.create(
            client=user,
            title=data['title'],
            description=description,
            budget=round_money(data.get('budget') or 0),
            max_proposals=data.get('max_proposals'),
            automation_type=data.get('automation_type') or '',
            skills=build_auto_tags(data),
        )
        logger.info(f"Project {project.id} created by client {user.id} with tags {project.skills}")
        return project

    def submit_proposal(self, user_id, project_id, content, price):
        """Proposals are free; monetization comes from commission and boosts"""
        user = self.users.get(user_id)
        if user.role != 'freelancer':
            raise ForbiddenError('Only freelancers can submit proposals')

        project = self.projects.get(project_id)

        try:
            price = round_money(price)
        except ValueError:
            raise InvalidInputError('Price must be a number')
        if price < 0:
            raise InvalidInputError('Price cannot be negative')

        if self.proposals.exists_for(project, user):
            raise ConflictError('You have already submitted a proposal for this project')

        max_proposals = project.max_proposals or self.config.default_max_proposals
        if self.proposals.count_for_project(project) >= max_proposals:
            raise InvalidStateError('Maximum number of proposals reached for this project')

        try:
            with transaction.atomic():
                proposal = self.proposals.create(project, user, content, price)
        except IntegrityError:
            raise ConflictError('You have already submitted a proposal for this project')

        logger.info(f"Proposal {proposal.id} submitted by freelancer {user.id} on project {project.id}")
        return proposal

    def list_proposals(self, user_id, project_id):
        project = self.projects.get(project_id)
        if project.client_id != self.users.get(user_id).id:
            raise ForbiddenError('Access denied')
        return self.proposals.for_project(project)
