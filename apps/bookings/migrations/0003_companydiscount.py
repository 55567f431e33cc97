from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('bookings', '0002_booking_no_overlap_for_active'),
    ]

    operations = [
        migrations.CreateModel(
            name='CompanyDiscount',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('nif', models.CharField(max_length=9, unique=True)),
                ('company_name', models.CharField(blank=True, default='', max_length=200)),
                ('discount_percentage', models.DecimalField(decimal_places=2, max_digits=5)),
                ('active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Company discount',
                'verbose_name_plural': 'Company discounts',
                'ordering': ['nif'],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('discount_percentage__gte', 0), ('discount_percentage__lte', 100)),
                        name='company_discount_percentage_range',
                    ),
                ],
            },
        ),
    ]
