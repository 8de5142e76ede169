"""
Driver rating aggregation

A driver's averageRating/totalRatings are derived data: they are recomputed
from every rated booking of that driver each time a booking is rated, never
adjusted incrementally.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Tuple

from pymongo.database import Database

from database import NEWEST_FIRST, session_options, to_object_id, utcnow
from errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


def round_rating(total: int, count: int) -> float:
    if count == 0:
        return 0.0
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def recompute_driver_rating(db: Database, driver_id, session=None) -> Tuple[float, int]:
    """Recompute and persist a driver's average rating and rating count."""
    opts = session_options(session)
    rated = db["booking"].find(
        {"driverId": driver_id, "rating": {"$exists": True}},
        {"rating": 1},
        **opts,
    )
    ratings = [doc["rating"] for doc in rated]
    count = len(ratings)
    average = round_rating(sum(ratings), count)

    db["driver"].update_one(
        {"_id": driver_id},
        {"$set": {"averageRating": average, "totalRatings": count, "updatedAt": utcnow()}},
        **opts,
    )
    logger.info("Driver %s rating recomputed: %.1f over %d ratings", driver_id, average, count)
    return average, count


def driver_ratings(db: Database, driver_id: str) -> dict:
    oid = to_object_id(driver_id)
    if oid is None:
        raise ValidationError("Invalid driver id")
    driver = db["driver"].find_one({"_id": oid}, {"averageRating": 1, "totalRatings": 1})
    if not driver:
        raise NotFound("Driver not found")

    rated = db["booking"].find(
        {"driverId": oid, "rating": {"$exists": True}},
        {"rating": 1, "review": 1, "createdAt": 1},
    ).sort(NEWEST_FIRST)
    ratings_list = [
        {
            "bookingId": str(doc["_id"]),
            "rating": doc["rating"],
            "review": doc.get("review"),
            "createdAt": doc.get("createdAt"),
        }
        for doc in rated
    ]
    return {
        "totalRatings": driver.get("totalRatings", 0),
        "averageRating": driver.get("averageRating", 0),
        "ratingsList": ratings_list,
    }
