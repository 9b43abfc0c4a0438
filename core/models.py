from django.db import models
from django.contrib.auth.models import AbstractUser
from django.utils import timezone
from django.core.validators import MinValueValidator
from django.conf import settings
from decimal import Decimal


class User(AbstractUser):
    ROLE_CHOICES = [
        ('client', 'Client'),
        ('freelancer', 'Freelancer'),
        ('admin', 'Admin'),
    ]

    PLAN_CHOICES = [
        ('free', 'Free'),
        ('pro', 'Pro'),
        ('business', 'Business'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='freelancer', db_index=True)
    plan = models.CharField(max_length=10, choices=PLAN_CHOICES, default='free')
    avatar = models.URLField(max_length=500, blank=True, null=True)
    bio = models.TextField(blank=True)
    boosted_until = models.DateTimeField(null=True, blank=True)
    # Customer reference at the escrow payment gateway, created lazily on first deal
    gateway_customer_id = models.CharField(max_length=100, blank=True, null=True)

    def __str__(self):
        return f"{self.id}-{self.username}"

    @property
    def is_boosted(self):
        return bool(self.boosted_until and self.boosted_until > timezone.now())

    @property
    def display_name(self):
        return self.get_full_name() or self.username


class Project(models.Model):
    AUTOMATION_TYPE_CHOICES = [
        ('telegram_bot', 'Telegram Bot'),
        ('telegram_mini_app', 'Telegram Mini App'),
        ('automation_pipeline', 'Automation Pipeline'),
        ('ai_assistant', 'AI Assistant'),
        ('integration', 'Integration'),
    ]

    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='projects')
    title = models.CharField(max_length=255)
    description = models.TextField()
    budget = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(Decimal('0'))]
    )
    # Normalised lowercase tags, manual skills merged with keyword-derived ones
    skills = models.JSONField(default=list, blank=True)
    max_proposals = models.PositiveIntegerField(null=True, blank=True)
    automation_type = models.CharField(max_length=30, choices=AUTOMATION_TYPE_CHOICES, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['client'], name='project_client_idx'),
            models.Index(fields=['created_at'], name='project_created_idx'),
        ]

    def __str__(self):
        return self.title

    def get_skill_set(self):
        """Project tags normalised for comparison"""
        return {str(skill).strip().lower() for skill in (self.skills or []) if str(skill).strip()}


class Proposal(models.Model):
    """
    A free offer from a freelancer on a client's project.
    One proposal per (project, freelancer) pair.
    """
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='proposals')
    freelancer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='sent_proposals')
    content = models.TextField()
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['project', 'freelancer'], name='unique_proposal_per_freelancer'),
        ]

    def __str__(self):
        return f"Proposal #{self.id} by {self.freelancer.username} on {self.project.title}"

    @property
    def client(self):
        return self.project.client


class ProjectInvite(models.Model):
    """Direct invitation of a freelancer to a project, counted against the client's plan quota"""
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='invites')
    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='sent_invites')
    freelancer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='received_invites')
    message = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['project', 'freelancer'], name='unique_invite_per_freelancer'),
        ]

    def __str__(self):
        return f"Invite to {self.freelancer.username} for {self.project.title}"


class Notification(models.Model):
    TYPE_CHOICES = [
        ('Payments', 'Payments'),
        ('Projects', 'Projects'),
        ('Disputes', 'Disputes'),
        ('System', 'System'),
    ]
    PRIORITY_CHOICES = [
        ('info', 'Info'),
        ('success', 'Success'),
        ('warning', 'Warning'),
        ('urgent', 'Urgent'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    title = models.CharField(null=True, max_length=200)
    notification_text = models.TextField()
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='info')
    related_model_id = models.PositiveIntegerField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Notification for {self.user.username}: {self.title}"

    def mark_as_read(self):
        self.is_read = True
        self.save(update_fields=['is_read'])
