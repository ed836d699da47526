import uuid

import django.db.models.deletion
import django.utils.timezone
import enrollments.models
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        ('payments', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Enrollment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('pending_payment', 'Pending Payment'), ('active', 'Active'), ('completed', 'Completed'), ('expired', 'Expired'), ('cancelled', 'Cancelled'), ('refunded', 'Refunded')], db_index=True, default='pending_payment', max_length=20)),
                ('access_start_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('access_end_date', models.DateTimeField(blank=True, null=True)),
                ('progress', models.JSONField(blank=True, default=enrollments.models.default_progress)),
                ('certificate_eligible', models.BooleanField(default=False)),
                ('enrolled_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('expired_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('course', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='enrollments', to='core.course')),
                ('institution', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='enrollments', to='core.institution')),
                ('payment', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='activated_enrollment', to='payments.payment')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='enrollments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-enrolled_at'],
                'indexes': [
                    models.Index(fields=['user', 'course', 'status'], name='enrollments_user_id_6a1f3b_idx'),
                    models.Index(fields=['status', 'access_end_date'], name='enrollments_status_2e9c4d_idx'),
                    models.Index(fields=['institution', 'status'], name='enrollments_institu_7d5b8e_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'active')), fields=('user', 'course'), name='unique_active_enrollment_per_course'),
                ],
            },
        ),
    ]
