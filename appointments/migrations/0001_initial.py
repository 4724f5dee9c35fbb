import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('leads', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Appointment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('deleted_at', models.DateTimeField(blank=True, db_index=True, help_text='Set when the row is moved to trash', null=True)),
                ('lead_name', models.CharField(blank=True, max_length=255)),
                ('lead_phone', models.CharField(max_length=32)),
                ('scheduled_at', models.DateTimeField(db_index=True)),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], db_index=True, default='scheduled', max_length=20)),
                ('outcome', models.CharField(choices=[('interested', 'Interested'), ('followup', 'Follow-up'), ('manual', 'Manual')], default='manual', max_length=20)),
                ('created_by_name', models.CharField(blank=True, max_length=255)),
                ('selected_plan', models.CharField(blank=True, max_length=100, null=True)),
                ('negotiated_price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointments', to='leads.worker')),
                ('lead', models.ForeignKey(blank=True, help_text='Source lead. Name and phone are copied so the appointment survives its deletion', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointments', to='leads.lead')),
            ],
            options={
                'ordering': ['-scheduled_at', '-id'],
            },
        ),
    ]
