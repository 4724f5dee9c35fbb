from django.db import models

from leads.models import Lead, SoftDeleteModel, Worker


class Appointment(SoftDeleteModel):
    STATUS_SCHEDULED = 'scheduled'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    OUTCOME_INTERESTED = 'interested'
    OUTCOME_FOLLOWUP = 'followup'
    OUTCOME_MANUAL = 'manual'
    OUTCOME_CHOICES = [
        (OUTCOME_INTERESTED, 'Interested'),
        (OUTCOME_FOLLOWUP, 'Follow-up'),
        (OUTCOME_MANUAL, 'Manual'),
    ]

    lead = models.ForeignKey(
        Lead,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointments',
        help_text="Source lead. Name and phone are copied so the appointment survives its deletion"
    )
    lead_name = models.CharField(max_length=255, blank=True)
    lead_phone = models.CharField(max_length=32)

    scheduled_at = models.DateTimeField(db_index=True)
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_SCHEDULED,
        db_index=True
    )
    outcome = models.CharField(
        max_length=20,
        choices=OUTCOME_CHOICES,
        default=OUTCOME_MANUAL
    )

    created_by = models.ForeignKey(
        Worker,
        on_delete=models.SET_NULL,
        null=True,
        related_name='appointments'
    )
    created_by_name = models.CharField(max_length=255, blank=True)

    # Deal
    selected_plan = models.CharField(max_length=100, blank=True, null=True)
    negotiated_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    notes = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-scheduled_at', '-id']

    def __str__(self):
        return f"Appointment {self.id}: {self.lead_name or self.lead_phone} at {self.scheduled_at} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES
