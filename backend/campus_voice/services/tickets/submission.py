import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from campus_voice.adapters.contracts import TICKETS, BlobStorage, RecordStore
from campus_voice.core.config import settings
from campus_voice.core.exceptions import PortalError, SubmissionError, ValidationError
from campus_voice.core.logging import get_logger
from campus_voice.models.enums import Category, Severity, TicketStatus, Visibility
from campus_voice.schemas.ticket import TicketRead
from campus_voice.services.auth.session import Session

logger = get_logger(__name__)

TITLE_LENGTH = (10, 100)
DESCRIPTION_LENGTH = (20, 1000)

IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
}


@dataclass
class ImageAttachment:
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def validate_image(image: ImageAttachment) -> None:
    content_type = (image.content_type or "").lower()
    if content_type not in settings.allowed_image_types or content_type not in IMAGE_EXTENSIONS:
        raise ValidationError("Only JPEG and PNG images are allowed")
    if image.size > settings.MAX_IMAGE_SIZE:
        raise ValidationError(f"Image must be at most {settings.MAX_IMAGE_SIZE // (1024 * 1024)}MB")


def _check_length(name: str, value: str, bounds: tuple) -> None:
    low, high = bounds
    if len(value) < low:
        raise ValidationError(f"{name} must be at least {low} characters")
    if len(value) > high:
        raise ValidationError(f"{name} must be at most {high} characters")


class TicketSubmissionForm:
    """New-complaint form: local validation, optional image upload, ticket insert."""

    def __init__(self, store: RecordStore, storage: BlobStorage, session: Session):
        self._store = store
        self._storage = storage
        self._session = session
        self.reset()

    def reset(self) -> None:
        self.title = ""
        self.description = ""
        self.category: Optional[str] = None
        self.severity: Optional[str] = None
        self.visibility: str = Visibility.PRIVATE.value
        self.image: Optional[ImageAttachment] = None

    def attach_image(self, image: Optional[ImageAttachment]) -> None:
        if image is not None:
            validate_image(image)
        self.image = image

    def validate(self) -> Dict[str, Any]:
        """Length limits apply to the fields as typed; blank-only input counts as missing."""
        title = self.title or ""
        description = self.description or ""
        if not title.strip() or not description.strip():
            raise ValidationError("Please fill in all required fields")
        _check_length("Title", title, TITLE_LENGTH)
        _check_length("Description", description, DESCRIPTION_LENGTH)

        if not self.category:
            raise ValidationError("Category is required")
        if not self.severity:
            raise ValidationError("Severity is required")
        try:
            category = Category(self.category)
            severity = Severity(self.severity)
            visibility = Visibility(self.visibility or Visibility.PRIVATE.value)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if self.image is not None:
            validate_image(self.image)

        return {
            "title": title,
            "description": description,
            "category": category.value,
            "severity": severity.value,
            "visibility": visibility.value,
        }

    async def _upload_image(self) -> str:
        image = self.image
        path = f"{self._session.user_id}/{uuid.uuid4().hex}{IMAGE_EXTENSIONS[image.content_type.lower()]}"
        try:
            return await self._storage.upload(path, image.content, image.content_type)
        except PortalError as e:
            logger.error(f"Image upload failed for {self._session.user_id}: {e}")
            raise SubmissionError("Failed to upload image") from e

    async def submit(self) -> TicketRead:
        fields = self.validate()

        image_url = await self._upload_image() if self.image is not None else None

        record = {
            **fields,
            "status": TicketStatus.OPEN.value,
            "upvote_count": 0,
            "created_by": self._session.user_id,
            "image_url": image_url,
        }
        try:
            ticket_id = await self._store.insert(TICKETS, record)
            created = await self._store.get(TICKETS, ticket_id)
        except PortalError as e:
            logger.error(f"Error submitting complaint: {e}")
            raise SubmissionError() from e
        if created is None:
            raise SubmissionError("Ticket was not stored")

        logger.info(f"Ticket {ticket_id} submitted by {self._session.user_id}")
        self.reset()
        return TicketRead.model_validate(created)
