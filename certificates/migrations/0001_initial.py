import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        ('enrollments', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Certificate',
            fields=[
                ('id', models.CharField(editable=False, max_length=100, primary_key=True, serialize=False)),
                ('recipient_name', models.CharField(max_length=255)),
                ('course_name', models.CharField(max_length=255)),
                ('institution_name', models.CharField(max_length=255)),
                ('issue_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('expiry_date', models.DateTimeField(blank=True, null=True)),
                ('template_ref', models.CharField(max_length=255)),
                ('document_id', models.CharField(help_text='Working copy of the template', max_length=255)),
                ('file_id', models.CharField(help_text='Published PDF', max_length=255)),
                ('document_url', models.CharField(max_length=500)),
                ('verification_url', models.CharField(max_length=500)),
                ('grade', models.CharField(blank=True, max_length=32)),
                ('final_score', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ('status', models.CharField(choices=[('generated', 'Generated'), ('issued', 'Issued'), ('revoked', 'Revoked')], default='issued', max_length=20)),
                ('revoked_reason', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('course', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='certificates', to='core.course')),
                ('enrollment', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='issued_certificate', to='enrollments.enrollment')),
                ('institution', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='certificates', to='core.institution')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='certificates', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-issue_date'],
                'indexes': [
                    models.Index(fields=['institution', 'issue_date'], name='certificate_institu_4b3e2a_idx'),
                    models.Index(fields=['user', 'issue_date'], name='certificate_user_id_8f1d6c_idx'),
                ],
            },
        ),
    ]
