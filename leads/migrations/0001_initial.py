import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Worker',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('worker', 'Worker'), ('admin', 'Admin')], db_index=True, default='worker', max_length=20)),
                ('status', models.CharField(choices=[('active', 'Active'), ('suspended', 'Suspended')], db_index=True, default='active', max_length=20)),
                ('suspension_reason', models.CharField(blank=True, help_text='Shown to the worker when they try to sign in', max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(help_text='Django user this caller signs in with', on_delete=django.db.models.deletion.CASCADE, related_name='worker', to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name='LeadUpload',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('filename', models.CharField(max_length=255)),
                ('total_lines', models.PositiveIntegerField(default=0)),
                ('imported_count', models.PositiveIntegerField(default=0)),
                ('duplicate_count', models.PositiveIntegerField(default=0)),
                ('invalid_count', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('uploaded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='uploads', to='leads.worker')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Lead',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('deleted_at', models.DateTimeField(blank=True, db_index=True, help_text='Set when the row is moved to trash', null=True)),
                ('phone', models.CharField(db_index=True, help_text='Contact number (normalized by the import pipeline)', max_length=32)),
                ('name', models.CharField(blank=True, max_length=255, null=True)),
                ('email', models.EmailField(blank=True, max_length=254, null=True)),
                ('website', models.CharField(blank=True, max_length=500, null=True)),
                ('category', models.CharField(blank=True, db_index=True, help_text='Business category, e.g. roofing, hvac, plumbing', max_length=100, null=True)),
                ('status', models.CharField(choices=[('NEW', 'New'), ('ASSIGNED', 'Assigned'), ('COMPLETED', 'Completed'), ('DNC', 'Do Not Call')], db_index=True, default='NEW', max_length=20)),
                ('assigned_at', models.DateTimeField(blank=True, null=True)),
                ('locked_until', models.DateTimeField(blank=True, help_text='Lease expiry. Past this point the lead can be handed to someone else', null=True)),
                ('attempt_count', models.PositiveIntegerField(default=0, help_text='Number of completed call attempts')),
                ('max_attempts', models.PositiveIntegerField(blank=True, help_text='Overrides LEAD_MAX_ATTEMPTS for this lead', null=True)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('assigned_to', models.ForeignKey(blank=True, help_text='Worker currently holding the lead', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='held_leads', to='leads.worker')),
                ('upload', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='leads', to='leads.leadupload')),
            ],
            options={
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['status', 'locked_until'], name='lead_status_lock_idx'),
                    models.Index(fields=['category', 'status'], name='lead_category_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WorkerLeadHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('lead', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='worker_history', to='leads.lead')),
                ('worker', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lead_history', to='leads.worker')),
            ],
            options={
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('worker', 'lead'), name='unique_worker_lead_history'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CallSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('deleted_at', models.DateTimeField(blank=True, db_index=True, help_text='Set when the row is moved to trash', null=True)),
                ('to_number', models.CharField(blank=True, max_length=32)),
                ('start_time', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('duration_seconds', models.PositiveIntegerField(default=0)),
                ('outcome', models.CharField(choices=[('no_answer', 'No Answer'), ('voicemail', 'Voicemail'), ('not_interested', 'Not Interested'), ('interested', 'Interested'), ('followup', 'Follow-up Scheduled'), ('wrong_number', 'Wrong Number'), ('dnc', 'Do Not Call')], db_index=True, max_length=20)),
                ('notes', models.TextField(blank=True, null=True)),
                ('followup_at', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('followup_priority', models.CharField(blank=True, choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High')], max_length=10, null=True)),
                ('followup_notes', models.TextField(blank=True, null=True)),
                ('appointment_created', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('lead', models.ForeignKey(blank=True, help_text='Lead that was called. Kept null once the lead is deleted', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='calls', to='leads.lead')),
                ('user', models.ForeignKey(help_text='Worker who placed the call', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='calls', to='leads.worker')),
            ],
            options={
                'ordering': ['-start_time', '-id'],
            },
        ),
        migrations.CreateModel(
            name='AdminAuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(db_index=True, max_length=64)),
                ('entity_type', models.CharField(blank=True, max_length=32)),
                ('entity_id', models.BigIntegerField(blank=True, null=True)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('admin', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_entries', to='leads.worker')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
    ]
