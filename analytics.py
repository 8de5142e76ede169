from pymongo.database import Database

from database import IDENTITY_COLLECTIONS


def system_statistics(db: Database) -> dict:
    counts = {name: db[name].count_documents({}) for name in IDENTITY_COLLECTIONS}
    return {
        "totalAdmins": counts["admin"],
        "totalCustomers": counts["customer"],
        "totalDrivers": counts["driver"],
        "totalBookings": db["booking"].count_documents({}),
    }


def passenger_statistics(db: Database) -> list:
    """Rides, total fare and average distance per customer with at least one booking."""
    pipeline = [
        {
            "$lookup": {
                "from": "booking",
                "localField": "_id",
                "foreignField": "customerId",
                "as": "rideData",
            }
        },
        {"$unwind": {"path": "$rideData", "preserveNullAndEmptyArrays": False}},
        {
            "$group": {
                "_id": "$_id",
                "name": {"$first": "$name"},
                "totalRides": {"$sum": 1},
                "totalFare": {"$sum": "$rideData.fare"},
                "avgDistance": {"$avg": "$rideData.distance"},
            }
        },
    ]
    stats = [
        {
            "name": row["name"],
            "totalRides": row["totalRides"],
            "totalFare": round(row["totalFare"], 2),
            "avgDistance": round(row["avgDistance"], 2),
        }
        for row in db["customer"].aggregate(pipeline)
    ]
    stats.sort(key=lambda row: row["name"])
    return stats
