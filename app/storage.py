import logging
from pathlib import Path

from app.config import settings
from app.models import Attachment

logger = logging.getLogger(__name__)


def attachment_path(name: str) -> Path:
    """Absolute path of a stored attachment file."""
    return Path(settings.ATTACHMENT_DIR).resolve() / name


def delete_attachment_file(attachment: Attachment) -> None:
    """
    Remove the file backing *attachment*.

    A file that is already gone is not an error; any other ``OSError``
    propagates to the caller before the record is touched.
    """
    path = attachment_path(attachment.name)
    path.unlink(missing_ok=True)
    logger.debug("Deleted attachment file %s", path)
