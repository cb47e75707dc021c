"""
Double opt-in workflow turning a slot request into a booking exactly once.

Submitted -> PendingConfirmation -> Confirmed | Expired
"""

from __future__ import annotations

import logging
import secrets
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

import pendulum
from pendulum import DateTime
from pydantic import ValidationError as PydanticValidationError

from ..domain.exceptions import TokenNotFoundError, ValidationError
from ..domain.models import Booking, PendingRequest, RequesterDetails, TimeRange

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 60
TOKEN_BYTES = 32


class PendingRequestStoreProtocol(Protocol):
    def add(self, request: PendingRequest) -> None: ...

    def take(self, token: str) -> Optional[PendingRequest]:
        """Atomically remove and return the request for ``token``."""

    def purge_expired(self, now: DateTime, ttl_minutes: int) -> int: ...


class BookingStoreProtocol(Protocol):
    def append(self, booking: Booking) -> Booking: ...

    def list(self, page_ref: Optional[str] = None) -> List[Booking]: ...


class NotifierProtocol(Protocol):
    """Outbound messages. Failures are logged by the workflow, never raised."""

    def send_confirmation_link(self, contact: str, token: str, metadata: Dict[str, Any]) -> None: ...

    def notify_owner(self, booking: Booking, metadata: Dict[str, Any]) -> None: ...


class ConfirmationWorkflow:
    """
    Manages pending requests from submission to booking.

    A token is consumed by a single ``take`` on the store, which removes the
    request in the same step it is read. A second click, a forged token and
    an expired link all get the same ``TokenNotFoundError``.
    """

    def __init__(
        self,
        pending_store: PendingRequestStoreProtocol,
        booking_store: BookingStoreProtocol,
        notifier: NotifierProtocol,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        clock: Callable[[], DateTime] = lambda: pendulum.now("UTC"),
        pages: Any = None,
    ):
        self.pending_store = pending_store
        self.booking_store = booking_store
        self.notifier = notifier
        self.ttl_minutes = ttl_minutes
        self.clock = clock
        self._pages = pages

    def submit(
        self,
        page_ref: str,
        requester: Union[RequesterDetails, Mapping[str, Any]],
        slot: TimeRange,
    ) -> PendingRequest:
        """
        Validate a request, store it and send the confirmation link.

        Raises:
            ValidationError: If requester fields or the slot are rejected
        """
        details = self._validate_requester(requester)
        now = self.clock()

        problems = []
        if not page_ref or not page_ref.strip():
            problems.append("page_ref: must not be empty")
        if slot.start >= slot.end:
            problems.append("slot: start must be before end")
        elif slot.start <= now:
            problems.append("slot: start must be in the future")
        if problems:
            raise ValidationError(problems)

        request = PendingRequest(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            page_ref=page_ref,
            requester=details,
            start=slot.start,
            end=slot.end,
            created_at=now,
        )
        self.pending_store.add(request)
        logger.info("Pending request stored for page %s", page_ref)

        metadata = {
            **self._page_metadata(page_ref),
            "page_ref": page_ref,
            "requester_name": details.name,
            "start": request.start.to_iso8601_string(),
            "end": request.end.to_iso8601_string(),
            "timezone": details.timezone,
        }
        try:
            self.notifier.send_confirmation_link(details.email, request.token, metadata)
        except Exception:
            logger.exception("Sending confirmation link for page %s failed", page_ref)

        return request

    def confirm(self, token: str, page_ref: Optional[str] = None) -> Booking:
        """
        Consume a token and create its booking.

        Raises:
            TokenNotFoundError: If the token is unknown, already used,
                expired or belongs to another page
        """
        request = self.pending_store.take(token) if token else None
        now = self.clock()

        if request is None:
            logger.info("Confirmation rejected: no pending request")
            raise TokenNotFoundError()
        if request.is_expired(now, self.ttl_minutes):
            logger.info("Confirmation rejected: request for page %s expired", request.page_ref)
            raise TokenNotFoundError()
        if page_ref is not None and request.page_ref.lower() != page_ref.strip().lower():
            logger.info("Confirmation rejected: token does not belong to page %s", page_ref)
            raise TokenNotFoundError()

        booking = self.booking_store.append(Booking(
            id=uuid.uuid4().hex,
            page_ref=request.page_ref,
            requester=request.requester,
            start=request.start,
            end=request.end,
            created_at=now,
        ))
        logger.info("Booking %s created for page %s", booking.id, booking.page_ref)

        try:
            self.notifier.notify_owner(booking, self._page_metadata(booking.page_ref))
        except Exception:
            logger.exception("Notifying owner about booking %s failed", booking.id)

        return booking

    def purge_expired(self) -> int:
        """Remove pending requests older than the TTL."""
        return self.pending_store.purge_expired(self.clock(), self.ttl_minutes)

    def list_bookings(self, page_ref: Optional[str] = None) -> List[Booking]:
        """Confirmed bookings in creation order, optionally for one page."""
        bookings = self.booking_store.list()
        if page_ref is None:
            return bookings
        key = page_ref.strip().lower()
        return [booking for booking in bookings if booking.page_ref.lower() == key]

    @staticmethod
    def _validate_requester(
        requester: Union[RequesterDetails, Mapping[str, Any]],
    ) -> RequesterDetails:
        if isinstance(requester, RequesterDetails):
            return requester
        try:
            return RequesterDetails.model_validate(dict(requester))
        except PydanticValidationError as exc:
            raise ValidationError([
                f"{'.'.join(str(part) for part in error['loc']) or 'requester'}: {error['msg']}"
                for error in exc.errors()
            ]) from exc

    def _page_metadata(self, page_ref: str) -> Dict[str, Any]:
        if self._pages is None:
            return {}
        page = self._pages.find_page(page_ref)
        if page is None:
            return {}
        return {"owner_name": page.owner_name, "owner_email": page.owner_email}
