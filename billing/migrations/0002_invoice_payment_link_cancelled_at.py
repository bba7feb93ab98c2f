from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('billing', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='invoice',
            name='payment_link_cancelled_at',
            field=models.DateTimeField(blank=True, null=True),
        ),
    ]
