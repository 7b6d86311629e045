import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected'), ('in_progress', 'In progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('scheduled_at', models.DateTimeField()),
                ('address', models.CharField(max_length=255)),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('details', models.TextField(blank=True)),
                ('pricing_model', models.CharField(choices=[('hourly', 'Hourly'), ('fixed', 'Fixed price')], default='fixed', max_length=10)),
                ('quoted_price', models.DecimalField(decimal_places=2, help_text='Hourly rate for hourly bookings, total price for fixed ones.', max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('currency', models.CharField(default='BDT', max_length=3)),
                ('commission_percent', models.DecimalField(decimal_places=2, help_text='Commission rate resolved when the booking was created.', max_digits=5)),
                ('checked_in_at', models.DateTimeField(blank=True, null=True)),
                ('checked_out_at', models.DateTimeField(blank=True, null=True)),
                ('actual_hours', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ('final_amount', models.DecimalField(blank=True, decimal_places=2, help_text='Set only when the booking is completed.', max_digits=12, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancel_reason', models.CharField(blank=True, max_length=500)),
                ('cancelled_by', models.CharField(blank=True, choices=[('customer', 'Customer'), ('professional', 'Professional'), ('admin', 'Administrator'), ('system', 'System')], max_length=20)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to='catalog.servicecategory')),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to=settings.AUTH_USER_MODEL)),
                ('professional', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='assigned_bookings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Booking',
                'verbose_name_plural': 'Bookings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='booking_status_idx'),
                    models.Index(fields=['professional', 'status'], name='booking_prof_status_idx'),
                    models.Index(fields=['customer', 'status'], name='booking_cust_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('final_amount__isnull', True), ('status', 'completed'), _connector='OR'), name='booking_final_amount_only_when_completed'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BookingEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('created', 'Created'), ('accepted', 'Accepted'), ('rejected', 'Rejected'), ('checked_in', 'Checked in'), ('checked_out', 'Checked out'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('payment_completed', 'Payment completed'), ('refunded', 'Refunded')], max_length=32)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('booking', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='events', to='bookings.booking')),
            ],
            options={
                'verbose_name': 'Booking event',
                'verbose_name_plural': 'Booking events',
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['booking', 'created_at'], name='bookingevent_booking_time_idx')],
            },
        ),
    ]
