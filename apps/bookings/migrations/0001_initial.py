from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('machines', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_date', models.DateField()),
                ('end_date', models.DateField(help_text='Inclusive last rental day.')),
                ('status', models.CharField(choices=[('pending', 'Pending (hold)'), ('confirmed', 'Confirmed'), ('cancelled', 'Cancelled')], default='pending', max_length=16)),
                ('hold_expires_at', models.DateTimeField(blank=True, help_text='Set only while the booking is a PENDING hold.', null=True)),
                ('delivery_selected', models.BooleanField(default=False)),
                ('pickup_selected', models.BooleanField(default=False)),
                ('insurance_selected', models.BooleanField(default=False)),
                ('operator_selected', models.BooleanField(default=False)),
                ('equipment_addons', models.JSONField(blank=True, default=list, help_text='Selected equipment add-ons as [{code, quantity}].')),
                ('customer_name', models.CharField(max_length=200)),
                ('customer_email', models.EmailField(max_length=254)),
                ('customer_phone', models.CharField(max_length=40)),
                ('customer_nif', models.CharField(blank=True, max_length=20, null=True)),
                ('site_address_line1', models.CharField(blank=True, max_length=255, null=True)),
                ('site_address_postal_code', models.CharField(blank=True, max_length=20, null=True)),
                ('site_address_city', models.CharField(blank=True, max_length=120, null=True)),
                ('site_address_notes', models.TextField(blank=True, null=True)),
                ('billing_is_business', models.BooleanField(default=False)),
                ('billing_company_name', models.CharField(blank=True, max_length=200, null=True)),
                ('billing_tax_id', models.CharField(blank=True, max_length=20, null=True)),
                ('billing_address_line1', models.CharField(blank=True, max_length=255, null=True)),
                ('billing_postal_code', models.CharField(blank=True, max_length=20, null=True)),
                ('billing_city', models.CharField(blank=True, max_length=120, null=True)),
                ('billing_country', models.CharField(blank=True, max_length=2, null=True)),
                ('total_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('discount_percentage', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=5)),
                ('original_subtotal_ex_vat_cents', models.PositiveIntegerField(blank=True, null=True)),
                ('discounted_subtotal_ex_vat_cents', models.PositiveIntegerField(blank=True, null=True)),
                ('price_lines', models.JSONField(blank=True, default=list, help_text='Priced lines at hold time as [{description, amount_cents, reference, is_primary}].')),
                ('stripe_payment_intent_id', models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ('stripe_charge_id', models.CharField(blank=True, max_length=255, null=True)),
                ('deposit_paid', models.BooleanField(default=False)),
                ('total_paid', models.BooleanField(default=False)),
                ('refunded_amount_cents', models.PositiveIntegerField(default=0)),
                ('refund_status', models.CharField(choices=[('none', 'No refund'), ('partial', 'Partially refunded'), ('full', 'Fully refunded')], default='none', max_length=16)),
                ('refund_ids', models.JSONField(blank=True, default=list)),
                ('dispute_id', models.CharField(blank=True, max_length=255, null=True)),
                ('dispute_status', models.CharField(choices=[('none', 'No dispute'), ('open', 'Open'), ('won', 'Won'), ('lost', 'Lost')], default='none', max_length=16)),
                ('dispute_reason', models.CharField(blank=True, max_length=120, null=True)),
                ('dispute_closed_at', models.DateTimeField(blank=True, null=True)),
                ('invoice_provider', models.CharField(blank=True, max_length=32, null=True)),
                ('invoice_provider_id', models.CharField(blank=True, max_length=64, null=True)),
                ('invoice_number', models.CharField(blank=True, max_length=64, null=True)),
                ('invoice_pdf_url', models.URLField(blank=True, max_length=500, null=True)),
                ('invoice_atcud', models.CharField(blank=True, max_length=64, null=True)),
                ('confirmation_email_sent_at', models.DateTimeField(blank=True, null=True)),
                ('internal_email_sent_at', models.DateTimeField(blank=True, null=True)),
                ('invoice_email_sent_at', models.DateTimeField(blank=True, null=True)),
                ('google_calendar_event_id', models.CharField(blank=True, max_length=255, null=True)),
                ('ops_notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('machine', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to='machines.machine')),
            ],
            options={
                'verbose_name': 'Booking',
                'verbose_name_plural': 'Bookings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['machine', 'start_date', 'end_date'], name='booking_machine_dates_idx'),
                    models.Index(fields=['status', 'hold_expires_at'], name='booking_status_hold_idx'),
                    models.Index(fields=['customer_email'], name='booking_customer_email_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('end_date__gte', models.F('start_date'))), name='booking_valid_dates'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BookingJob',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('issue_invoice', 'Issue invoice'), ('send_customer_confirmation', 'Send customer confirmation'), ('send_internal_confirmation', 'Send internal confirmation'), ('send_invoice_ready', 'Send invoice-ready email')], max_length=40)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('completed', 'Completed'), ('failed', 'Failed')], default='pending', max_length=16)),
                ('payload', models.JSONField(blank=True, default=dict)),
                ('result', models.JSONField(blank=True, null=True)),
                ('last_error', models.TextField(blank=True, default='')),
                ('attempts', models.PositiveSmallIntegerField(default=0)),
                ('max_attempts', models.PositiveSmallIntegerField(default=3)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('booking', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='jobs', to='bookings.booking')),
            ],
            options={
                'verbose_name': 'Booking job',
                'verbose_name_plural': 'Booking jobs',
                'ordering': ['created_at'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='booking_job_status_idx')],
                'constraints': [models.UniqueConstraint(fields=('booking', 'type'), name='booking_job_unique_type')],
            },
        ),
    ]
