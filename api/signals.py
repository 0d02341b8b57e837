import logging

from django.db.models.signals import post_delete
from django.dispatch import receiver

from api.models import UploadRecord

logger = logging.getLogger(__name__)


@receiver(post_delete, sender=UploadRecord)
def delete_stored_upload(sender, instance, **kwargs):
    # Also runs for records removed through a user cascade
    if instance.file:
        logger.info("Deleting stored file %s of upload %s", instance.file.name, instance.pk)
        instance.file.delete(save=False)
