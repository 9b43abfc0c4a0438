"""
Executor ranking for a client's project.

``rank_executors`` is a pure function over plain records so it can be fed
from the ORM by ``ExecutorService`` or built by hand.

Score (max 115):
    completed  min(completed / 8, 1) * 45
    skills     share of completed deals whose project tags intersect ours * 35,
               or 10 for a newcomer when the project has no tags at all
    budget     max(0, 1 - |avg_amount - budget| / max(budget, 1)) * 20
    boost      15 while boosted_until is in the future
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from financeapp.money import round_money

DEFAULT_LIMIT = 5
MAX_LIMIT = 20

COMPLETED_WEIGHT = 45
COMPLETED_SATURATION = 8
SKILL_WEIGHT = 35
NEWCOMER_SKILL_SCORE = 10
BUDGET_WEIGHT = 20
BOOST_SCORE = 15


@dataclass(frozen=True)
class FreelancerRecord:
    id: int
    username: str
    display_name: str = ''
    avatar: Optional[str] = None
    boosted_until: Optional[datetime] = None


@dataclass(frozen=True)
class CompletedDeal:
    receiver_id: int
    amount: Decimal
    skills: frozenset = frozenset()


@dataclass(frozen=True)
class InviteQuota:
    plan: str
    limit: int
    used: int

    @property
    def remaining(self):
        return max(self.limit - self.used, 0)

    def as_dict(self):
        return {'plan': self.plan, 'limit': self.limit, 'used': self.used, 'remaining': self.remaining}


@dataclass
class RankedExecutor:
    freelancer: FreelancerRecord
    score: Decimal
    completed_deals: int
    matched_skill_deals: int
    average_amount: Decimal
    is_boosted: bool
    already_invited: bool

    def as_dict(self):
        return {
            'id': self.freelancer.id,
            'username': self.freelancer.username,
            'display_name': self.freelancer.display_name,
            'avatar': self.freelancer.avatar,
            'boosted_until': self.freelancer.boosted_until.isoformat() if self.freelancer.boosted_until else None,
            'is_boosted': self.is_boosted,
            'already_invited': self.already_invited,
            'score': float(self.score),
            'stats': {
                'completed_deals': self.completed_deals,
                'matched_skill_deals': self.matched_skill_deals,
                'average_amount': str(self.average_amount),
            },
        }


@dataclass
class RankingResult:
    project_id: int
    total_candidates: int
    invite_quota: InviteQuota
    recommended: List[RankedExecutor] = field(default_factory=list)


def normalize_tags(tags):
    return frozenset(str(tag).strip().lower() for tag in (tags or []) if str(tag).strip())


def clamp_limit(limit):
    """Clamp a caller-supplied limit to [1, 20]; anything unparseable means the default"""
    try:
        value = int(float(limit))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_LIMIT
    return min(max(value, 1), MAX_LIMIT)


def round1(value):
    return Decimal(str(value)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)


def build_invite_quota(plan, limit, used):
    return InviteQuota(plan=plan, limit=limit, used=used)


def score_executor(freelancer, deals, project_tags, budget, now, already_invited=False):
    completed = len(deals)
    total = sum((Decimal(deal.amount) for deal in deals), Decimal('0'))
    average = total / completed if completed else Decimal('0')

    matched = sum(1 for deal in deals if deal.skills & project_tags)

    if completed:
        skill_score = Decimal(matched) / Decimal(completed) * SKILL_WEIGHT
    else:
        skill_score = Decimal(NEWCOMER_SKILL_SCORE) if not project_tags else Decimal('0')

    completed_score = min(Decimal(completed) / COMPLETED_SATURATION, Decimal('1')) * COMPLETED_WEIGHT

    budget = Decimal(budget or 0)
    if average > 0:
        budget_fit = max(Decimal('0'), 1 - abs(average - budget) / max(budget, Decimal('1')))
    else:
        budget_fit = Decimal('0')
    budget_score = budget_fit * BUDGET_WEIGHT

    is_boosted = bool(freelancer.boosted_until and freelancer.boosted_until > now)
    boost_score = Decimal(BOOST_SCORE) if is_boosted else Decimal('0')

    return RankedExecutor(
        freelancer=freelancer,
        score=round1(completed_score + skill_score + budget_score + boost_score),
        completed_deals=completed,
        matched_skill_deals=matched,
        average_amount=round_money(average),
        is_boosted=is_boosted,
        already_invited=already_invited,
    )


def rank_executors(
    project_id: int,
    project_tags: Iterable[str],
    budget,
    freelancers: Iterable[FreelancerRecord],
    completed_deals: Iterable[CompletedDeal],
    invited_ids: Iterable[int],
    invite_quota: InviteQuota,
    now: datetime,
    limit=DEFAULT_LIMIT,
) -> RankingResult:
    tags = normalize_tags(project_tags)
    invited = set(invited_ids)
    freelancers = list(freelancers)

    deals_by_freelancer = {}
    for deal in completed_deals:
        deals_by_freelancer.setdefault(deal.receiver_id, []).append(deal)

    ranked = [
        score_executor(
            freelancer,
            deals_by_freelancer.get(freelancer.id, []),
            tags,
            budget,
            now,
            already_invited=freelancer.id in invited,
        )
        for freelancer in freelancers
    ]
    # Stable sort keeps the input order among full ties
    ranked.sort(key=lambda item: (item.score, item.completed_deals), reverse=True)

    return RankingResult(
        project_id=project_id,
        total_candidates=len(freelancers),
        invite_quota=invite_quota,
        recommended=ranked[:clamp_limit(limit)],
    )
