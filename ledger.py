"""
Booking ledger

Owns booking documents and their lifecycle:

    pending -> accepted -> completed
    pending -> cancelled   (and, depending on the cancel policy, accepted -> cancelled)

Every state change is a single conditional ``find_one_and_update`` so the guard
and the write happen in one atomic step on the server. When a conditional update
matches nothing, a follow-up read only decides which error to raise.
"""

import logging
from typing import List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.database import Database

from database import NEWEST_FIRST, create_document, get_documents, session_options, to_object_id, utcnow
from errors import Conflict, InvalidState, NotFound, ValidationError
from ratings import recompute_driver_rating
from schemas import Booking, BookingStatus
from settings import CancelPolicy

logger = logging.getLogger(__name__)

PENDING = BookingStatus.PENDING.value
ACCEPTED = BookingStatus.ACCEPTED.value
COMPLETED = BookingStatus.COMPLETED.value
CANCELLED = BookingStatus.CANCELLED.value

# Source states each cancel policy allows; None means any state
CANCELLABLE_STATES = {
    CancelPolicy.PENDING_ONLY: [PENDING],
    CancelPolicy.UNTIL_COMPLETED: [PENDING, ACCEPTED],
    CancelPolicy.UNRESTRICTED: None,
}

RATEABLE_STATES = [ACCEPTED, COMPLETED]


def describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err["loc"])
        parts.append(f"{field}: {err['msg']}" if field else err["msg"])
    return "; ".join(parts)


class BookingLedger:
    def __init__(self, db: Database, cancel_policy: CancelPolicy = CancelPolicy.PENDING_ONLY,
                 use_transactions: bool = False):
        self.db = db
        self.cancel_policy = CancelPolicy(cancel_policy)
        self.use_transactions = use_transactions

    @property
    def bookings(self):
        return self.db["booking"]

    # Lifecycle

    def create(self, customer_id, pickup_location, dropoff_location, fare, distance) -> dict:
        customer_oid = to_object_id(customer_id)
        if customer_oid is None:
            raise ValidationError("Invalid customer id")
        try:
            booking = Booking(
                customer_id=customer_oid,
                pickup_location=pickup_location,
                dropoff_location=dropoff_location,
                fare=fare,
                distance=distance,
                status=BookingStatus.PENDING,
            )
        except PydanticValidationError as exc:
            raise ValidationError(describe_validation_error(exc)) from exc
        if not booking.pickup_location.strip() or not booking.dropoff_location.strip():
            raise ValidationError("Pickup and dropoff locations are required")

        booking_id = create_document("booking", booking, database=self.db)
        logger.info("Booking %s created by customer %s", booking_id, customer_oid)
        return self.get(booking_id)

    def get(self, booking_id) -> dict:
        oid = to_object_id(booking_id)
        doc = self.bookings.find_one({"_id": oid}) if oid is not None else None
        if not doc:
            raise NotFound("Booking not found")
        return doc

    def claim(self, booking_id, driver_id) -> dict:
        driver_oid = to_object_id(driver_id)
        if driver_oid is None:
            raise ValidationError("Invalid driver id")
        oid = to_object_id(booking_id)
        booking = None
        if oid is not None:
            booking = self.bookings.find_one_and_update(
                {"_id": oid, "status": PENDING},
                {"$set": {"driverId": driver_oid, "status": ACCEPTED, "updatedAt": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        if booking is None:
            logger.warning("Driver %s lost claim on booking %s", driver_oid, booking_id)
            raise Conflict("Booking not found or already taken by other driver")
        logger.info("Booking %s accepted by driver %s", oid, driver_oid)
        return booking

    def cancel(self, booking_id, customer_id) -> dict:
        owned = self._owned_filter(booking_id, customer_id)
        if owned is None:
            raise NotFound("Booking not found")

        guarded = dict(owned)
        allowed = CANCELLABLE_STATES[self.cancel_policy]
        if allowed is not None:
            guarded["status"] = {"$in": allowed}
        update = {"$set": {"status": CANCELLED, "updatedAt": utcnow()}}
        if self.cancel_policy is CancelPolicy.UNTIL_COMPLETED:
            update["$unset"] = {"driverId": ""}

        booking = self.bookings.find_one_and_update(
            guarded, update, return_document=ReturnDocument.AFTER,
        )
        if booking is None:
            current = self.bookings.find_one(owned, {"status": 1})
            if current is None:
                raise NotFound("Booking not found")
            raise InvalidState(f"Booking is {current['status']} and can no longer be cancelled")
        logger.info("Booking %s cancelled by customer %s", booking["_id"], booking["customerId"])
        return booking

    def rate(self, booking_id, customer_id, rating, review: Optional[str] = None) -> Tuple[dict, float]:
        """
        Record the customer's rating, complete the booking and refresh the
        driver's average. Returns the updated booking and the new average.
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer between 1 and 5")

        if not self.use_transactions:
            return self._rate(booking_id, customer_id, rating, review)
        with self.db.client.start_session() as session:
            with session.start_transaction():
                return self._rate(booking_id, customer_id, rating, review, session=session)

    def _rate(self, booking_id, customer_id, rating, review, session=None):
        opts = session_options(session)
        owned = self._owned_filter(booking_id, customer_id)
        if owned is None:
            raise NotFound("Booking not found")

        update = {"$set": {"rating": rating, "status": COMPLETED, "updatedAt": utcnow()}}
        if review is not None:
            update["$set"]["review"] = review
        else:
            update["$unset"] = {"review": ""}

        booking = self.bookings.find_one_and_update(
            {**owned, "status": {"$in": RATEABLE_STATES}},
            update,
            return_document=ReturnDocument.AFTER,
            **opts,
        )
        if booking is None:
            if self.bookings.find_one(owned, {"_id": 1}, **opts) is None:
                raise NotFound("Booking not found")
            raise InvalidState("Ride not finished yet, cannot rate")

        logger.info("Booking %s rated %d", booking["_id"], rating)
        average, _ = recompute_driver_rating(self.db, booking["driverId"], session=session)
        return booking, average

    # Availability queries

    def list_pending(self, limit: int = None, skip: int = 0) -> List[dict]:
        bookings = get_documents(
            "booking", {"status": PENDING}, limit=limit, database=self.db,
            sort=NEWEST_FIRST, skip=skip,
        )
        return self._attach(bookings, "customerId", "customer", "customer",
                            {"name": 1, "email": 1, "phone": 1})

    def list_history(self, customer_id, limit: int = None, skip: int = 0) -> List[dict]:
        customer_oid = to_object_id(customer_id)
        if customer_oid is None:
            raise ValidationError("Invalid customer id")
        bookings = get_documents(
            "booking", {"customerId": customer_oid}, limit=limit, database=self.db,
            sort=NEWEST_FIRST, skip=skip,
        )
        return self._attach(bookings, "driverId", "driver", "driver",
                            {"name": 1, "vehicleType": 1})

    def recent(self, limit: int = 5) -> List[dict]:
        return get_documents("booking", limit=limit, database=self.db, sort=NEWEST_FIRST)

    # Helpers

    def _owned_filter(self, booking_id, customer_id) -> Optional[dict]:
        oid = to_object_id(booking_id)
        customer_oid = to_object_id(customer_id)
        if oid is None or customer_oid is None:
            return None
        return {"_id": oid, "customerId": customer_oid}

    def _attach(self, bookings, ref_field, collection_name, target_field, projection):
        """Embed a summary of the referenced user next to each booking."""
        ids = list({b[ref_field] for b in bookings if b.get(ref_field) is not None})
        found = {}
        if ids:
            found = {doc["_id"]: doc for doc in self.db[collection_name].find({"_id": {"$in": ids}}, projection)}
        for booking in bookings:
            booking[target_field] = found.get(booking.get(ref_field))
        return bookings
