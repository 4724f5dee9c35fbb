"""
Lead queue models - workers, leads, assignment history and call sessions.

The Lead row carries the lease (assigned_to / locked_until) that the assignment
engine and the outcome processor are the only writers of.
"""

from django.conf import settings
from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone

from telemarketing import constants


class TrashQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)

    def trashed(self):
        return self.filter(deleted_at__isnull=False)


class SoftDeleteModel(models.Model):
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Set when the row is moved to trash"
    )

    objects = TrashQuerySet.as_manager()

    class Meta:
        abstract = True


class Worker(models.Model):
    ROLE_WORKER = 'worker'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = [
        (ROLE_WORKER, 'Worker'),
        (ROLE_ADMIN, 'Admin'),
    ]

    STATUS_ACTIVE = 'active'
    STATUS_SUSPENDED = 'suspended'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_SUSPENDED, 'Suspended'),
    ]

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='worker',
        help_text="Django user this caller signs in with"
    )
    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=ROLE_WORKER,
        db_index=True
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True
    )
    suspension_reason = models.CharField(
        max_length=255,
        blank=True,
        help_text="Shown to the worker when they try to sign in"
    )

    # Metadata
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.id} ({self.user.username})"

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE

    @property
    def display_name(self):
        return self.user.get_full_name() or self.user.username


class LeadUpload(models.Model):
    """
    Provenance of an imported batch of leads.

    Rows are produced by the import pipeline; the queue only reads them and
    deletes them on a master clear that asks for it.
    """

    filename = models.CharField(max_length=255)
    uploaded_by = models.ForeignKey(
        Worker,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='uploads'
    )
    total_lines = models.PositiveIntegerField(default=0)
    imported_count = models.PositiveIntegerField(default=0)
    duplicate_count = models.PositiveIntegerField(default=0)
    invalid_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.filename} ({self.imported_count} imported)"


class Lead(SoftDeleteModel):
    STATUS_CHOICES = [
        (constants.LEAD_STATUS_NEW, 'New'),
        (constants.LEAD_STATUS_ASSIGNED, 'Assigned'),
        (constants.LEAD_STATUS_COMPLETED, 'Completed'),
        (constants.LEAD_STATUS_DNC, 'Do Not Call'),
    ]

    phone = models.CharField(
        max_length=32,
        db_index=True,
        help_text="Contact number (normalized by the import pipeline)"
    )
    name = models.CharField(max_length=255, blank=True, null=True)
    email = models.EmailField(blank=True, null=True)
    website = models.CharField(max_length=500, blank=True, null=True)
    category = models.CharField(
        max_length=100,
        blank=True,
        null=True,
        db_index=True,
        help_text="Business category, e.g. roofing, hvac, plumbing"
    )

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=constants.LEAD_STATUS_NEW,
        db_index=True
    )

    # Lease
    assigned_to = models.ForeignKey(
        Worker,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='held_leads',
        help_text="Worker currently holding the lead"
    )
    assigned_at = models.DateTimeField(null=True, blank=True)
    locked_until = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Lease expiry. Past this point the lead can be handed to someone else"
    )

    # Call tracking
    attempt_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of completed call attempts"
    )
    max_attempts = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Overrides LEAD_MAX_ATTEMPTS for this lead"
    )

    upload = models.ForeignKey(
        LeadUpload,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='leads'
    )

    # Timing
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['status', 'locked_until'], name='lead_status_lock_idx'),
            models.Index(fields=['category', 'status'], name='lead_category_status_idx'),
        ]

    def __str__(self):
        return f"Lead {self.id}: {self.name or self.phone} ({self.status})"

    @property
    def effective_max_attempts(self):
        return self.max_attempts or settings.LEAD_MAX_ATTEMPTS


class WorkerLeadHistory(models.Model):
    """Append-only record of every (worker, lead) assignment."""

    worker = models.ForeignKey(
        Worker,
        on_delete=models.CASCADE,
        related_name='lead_history'
    )
    lead = models.ForeignKey(
        Lead,
        on_delete=models.CASCADE,
        related_name='worker_history'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['worker', 'lead'], name='unique_worker_lead_history'),
        ]

    def __str__(self):
        return f"worker {self.worker_id} -> lead {self.lead_id}"


class CallSession(SoftDeleteModel):
    OUTCOME_CHOICES = [
        (constants.OUTCOME_NO_ANSWER, 'No Answer'),
        (constants.OUTCOME_VOICEMAIL, 'Voicemail'),
        (constants.OUTCOME_NOT_INTERESTED, 'Not Interested'),
        (constants.OUTCOME_INTERESTED, 'Interested'),
        (constants.OUTCOME_FOLLOWUP, 'Follow-up Scheduled'),
        (constants.OUTCOME_WRONG_NUMBER, 'Wrong Number'),
        (constants.OUTCOME_DNC, 'Do Not Call'),
    ]

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
    ]

    # Parties involved
    lead = models.ForeignKey(
        Lead,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='calls',
        help_text="Lead that was called. Kept null once the lead is deleted"
    )
    user = models.ForeignKey(
        Worker,
        on_delete=models.SET_NULL,
        null=True,
        related_name='calls',
        help_text="Worker who placed the call"
    )
    to_number = models.CharField(max_length=32, blank=True)

    # Timing
    start_time = models.DateTimeField(default=timezone.now, db_index=True)
    duration_seconds = models.PositiveIntegerField(default=0)

    # Result
    outcome = models.CharField(
        max_length=20,
        choices=OUTCOME_CHOICES,
        db_index=True
    )
    notes = models.TextField(blank=True, null=True)

    # Follow-up
    followup_at = models.DateTimeField(null=True, blank=True, db_index=True)
    followup_priority = models.CharField(
        max_length=10,
        choices=PRIORITY_CHOICES,
        null=True,
        blank=True
    )
    followup_notes = models.TextField(blank=True, null=True)

    appointment_created = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-start_time', '-id']

    def __str__(self):
        return f"Call {self.id}: lead {self.lead_id} ({self.outcome})"


class AdminAuditLog(models.Model):
    admin = models.ForeignKey(
        Worker,
        on_delete=models.SET_NULL,
        null=True,
        related_name='audit_entries'
    )
    action = models.CharField(max_length=64, db_index=True)
    entity_type = models.CharField(max_length=32, blank=True)
    entity_id = models.BigIntegerField(null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.action} by {self.admin_id} ({self.entity_type})"
