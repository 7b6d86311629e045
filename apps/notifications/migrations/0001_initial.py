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
            name='NotificationRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('booking_created', 'Booking created'), ('booking_accepted', 'Booking accepted'), ('booking_rejected', 'Booking rejected'), ('booking_started', 'Booking started'), ('booking_completed', 'Booking completed'), ('booking_cancelled', 'Booking cancelled'), ('payment_completed', 'Payment completed'), ('refund_created', 'Refund created')], max_length=32)),
                ('payload', models.JSONField(default=dict)),
                ('status', models.CharField(choices=[('pending', 'Queued'), ('sent', 'Sent'), ('failed', 'Failed')], default='pending', max_length=20)),
                ('attempts', models.PositiveSmallIntegerField(default=0)),
                ('error_message', models.TextField(blank=True)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notification_requests', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Notification request',
                'verbose_name_plural': 'Notification requests',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='notif_status_created_idx'), models.Index(fields=['recipient', 'created_at'], name='notif_recipient_created_idx')],
            },
        ),
    ]
