from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('practice', '0001_initial'),
    ]

    operations = [
        migrations.AddConstraint(
            model_name='taskbilling',
            constraint=models.UniqueConstraint(
                condition=models.Q(('invoice_number', ''), _negated=True),
                fields=('invoice_number',),
                name='billing_invoice_number_unique',
            ),
        ),
    ]
