from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Task, TaskBilling


@receiver(post_save, sender=Task)
def create_billing_for_new_task(sender, instance: Task, created: bool, **kwargs):
    """Every task carries exactly one billing ledger from the moment it exists."""
    if kwargs.get('raw') or not created:
        return
    TaskBilling.objects.get_or_create(task=instance)
