# Generated manually
import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Website',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_email', models.EmailField(blank=True, max_length=254)),
                ('name', models.CharField(max_length=255)),
                ('type', models.CharField(choices=[('website', 'Website'), ('app', 'App'), ('other', 'Other'), ('id-card', 'ID Card'), ('bank-statement', 'Bank Statement'), ('document', 'Document')], default='website', max_length=20)),
                ('url', models.CharField(default='N/A', max_length=500)),
                ('login_url', models.CharField(blank=True, max_length=500)),
                ('username', models.CharField(blank=True, max_length=255)),
                ('password', models.CharField(blank=True, max_length=255)),
                ('files', models.JSONField(blank=True, default=list)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=10)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='websites', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'websites',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='websites_status_idx'),
                    models.Index(fields=['user', '-created_at'], name='websites_user_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ManagementRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('day', models.CharField(blank=True, max_length=50)),
                ('credit', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('profit', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('gross_profit', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('service_fee', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('net_profit', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('start_date', models.DateField(blank=True, null=True)),
                ('end_date', models.DateField(blank=True, null=True)),
                ('tasks', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('website', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='management_records', to='websites.website')),
            ],
            options={
                'db_table': 'website_management',
                'ordering': ['created_at'],
            },
        ),
    ]
