from decimal import Decimal

import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Machine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.SlugField(max_length=64, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('item_type', models.CharField(choices=[('primary', 'Primary machine'), ('addon', 'Equipment add-on')], default='primary', max_length=16)),
                ('charge_model', models.CharField(choices=[('per_booking', 'Flat per booking'), ('per_unit', 'Per unit'), ('per_day', 'Per unit per day')], default='per_booking', help_text='How the daily rate is applied when this row is priced as an add-on.', max_length=16)),
                ('daily_rate', models.DecimalField(decimal_places=2, help_text='Pre-VAT euros per rental day.', max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('deposit', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('delivery_charge', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('pickup_charge', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('min_days', models.PositiveSmallIntegerField(default=1)),
                ('requires_heavy_transport', models.BooleanField(default=False, help_text='Heavy-truck delivery: enforces the lead time and daily cutoff.')),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Machine',
                'verbose_name_plural': 'Machines',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['item_type', 'is_active'], name='machine_type_active_idx')],
            },
        ),
    ]
