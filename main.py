import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database
from pymongo.errors import PyMongoError

import analytics
import database
import identity
from auth import create_token, decode_token
from errors import Forbidden, RideHailingError, Unauthorized
from ledger import BookingLedger, describe_validation_error
from logging_setup import setup_logging
from ratings import driver_ratings
from schemas import (
    BookingCreate,
    CustomerUpdate,
    DriverRegistration,
    DriverStatusUpdate,
    DriverUpdate,
    LoginRequest,
    RatingRequest,
    UserKind,
    UserRegistration,
)
from settings import get_settings

settings = get_settings()
setup_logging(settings.log.level, settings.log.json_output, settings.log.environment)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        database.ensure_indexes()
    except PyMongoError:
        logger.exception("Could not create indexes, continuing without them")
    yield
    database.client.close()


app = FastAPI(title="Ride Hailing API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors
@app.exception_handler(RideHailingError)
async def ride_hailing_error_handler(request: Request, exc: RideHailingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": describe_validation_error(exc)})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Helpers
def serialize(doc):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    doc.pop("password", None)
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, dict):
            doc[k] = serialize(v)
    return doc


def get_db() -> Database:
    return database.db


def get_ledger(db: Database = Depends(get_db)) -> BookingLedger:
    return BookingLedger(
        db,
        cancel_policy=settings.booking.cancel_policy,
        use_transactions=settings.database.use_transactions,
    )


bearer_scheme = HTTPBearer(auto_error=False)


def current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> dict:
    if credentials is None:
        raise Unauthorized()
    payload = decode_token(credentials.credentials)
    return {"id": payload["sub"], "role": payload["role"]}


def require_roles(*roles: UserKind):
    allowed = {UserKind(role).value for role in roles}

    def dependency(user: dict = Depends(current_user)) -> dict:
        if user["role"] not in allowed:
            raise Forbidden()
        return user

    return dependency


def require_self_or_admin(user: dict, user_id: str, message: str):
    if user["role"] != UserKind.ADMIN.value and user["id"] != user_id:
        raise Forbidden(message)


@app.get("/")
def read_root():
    return {"message": "Ride Hailing Backend is running"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "⚠️ Default"
            response["database_name"] = db.name if hasattr(db, 'name') else "❌"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except PyMongoError as e:
                response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Registration & login
@app.post("/users", status_code=201)
def register_user(payload: UserRegistration, db: Database = Depends(get_db)):
    kind = UserKind(payload.role)
    user_id = identity.register(db, kind, payload.model_dump(exclude_none=True),
                                bcrypt_rounds=settings.auth.bcrypt_rounds)
    return {"message": f"User created in {kind.value} collection", "id": user_id}


@app.post("/drivers", status_code=201)
def register_driver(payload: DriverRegistration, db: Database = Depends(get_db)):
    driver_id = identity.register(db, UserKind.DRIVER, payload.model_dump(exclude_none=True),
                                  bcrypt_rounds=settings.auth.bcrypt_rounds)
    return {"message": "Driver created", "id": driver_id}


@app.post("/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    kind, user = identity.authenticate(db, payload.email, payload.password)
    logger.info("%s %s logged in", kind.value.capitalize(), user["_id"])
    return {"token": create_token(str(user["_id"]), kind.value)}


# Admin
@app.delete("/admin/users/{user_id}")
def admin_delete_user(user_id: str, user: dict = Depends(require_roles(UserKind.ADMIN)),
                      db: Database = Depends(get_db)):
    identity.delete_user(db, user_id)
    return {"message": "Admin access: User deleted from system"}


@app.get("/admin/system-management")
def system_management(user: dict = Depends(require_roles(UserKind.ADMIN)),
                      db: Database = Depends(get_db), ledger: BookingLedger = Depends(get_ledger)):
    return {
        "status": "System Operational",
        "statistics": analytics.system_statistics(db),
        "recentActivity": [serialize(b) for b in ledger.recent(5)],
    }


@app.get("/analytics/passengers")
def passenger_analytics(user: dict = Depends(require_roles(UserKind.ADMIN)), db: Database = Depends(get_db)):
    return analytics.passenger_statistics(db)


# Customers
@app.get("/customer/{customer_id}")
def get_customer(customer_id: str, user: dict = Depends(current_user), db: Database = Depends(get_db)):
    return serialize(identity.get_user(db, UserKind.CUSTOMER, customer_id))


@app.patch("/customer/{customer_id}")
def update_customer(customer_id: str, payload: CustomerUpdate, user: dict = Depends(current_user),
                    db: Database = Depends(get_db)):
    if user["id"] != customer_id:
        raise Forbidden("Access Denied: You can only update your own profile.")
    customer = identity.update_user(db, UserKind.CUSTOMER, customer_id,
                                    payload.model_dump(by_alias=True, exclude_none=True),
                                    bcrypt_rounds=settings.auth.bcrypt_rounds)
    return {"message": "Profile updated successfully", "data": serialize(customer)}


@app.delete("/users/{user_id}")
def delete_customer(user_id: str, user: dict = Depends(current_user), db: Database = Depends(get_db)):
    require_self_or_admin(user, user_id, "Access Denied: You can only delete your own account.")
    identity.delete_user(db, user_id, kinds=(UserKind.CUSTOMER,))
    return {"message": "User account deleted successfully"}


# Drivers
@app.patch("/drivers/{driver_id}/status")
def update_driver_status(driver_id: str, payload: DriverStatusUpdate, user: dict = Depends(current_user),
                         db: Database = Depends(get_db)):
    require_self_or_admin(user, driver_id, "Access Denied: You can only update your own status.")
    driver = identity.update_user(db, UserKind.DRIVER, driver_id, {"status": payload.status})
    return serialize(driver)


@app.patch("/drivers/{driver_id}")
def update_driver(driver_id: str, payload: DriverUpdate, user: dict = Depends(current_user),
                  db: Database = Depends(get_db)):
    require_self_or_admin(user, driver_id, "Access Denied: You can only update your own profile.")
    driver = identity.update_user(db, UserKind.DRIVER, driver_id,
                                  payload.model_dump(by_alias=True, exclude_none=True))
    return serialize(driver)


@app.get("/drivers/{driver_id}/ratings")
def get_driver_ratings(driver_id: str, db: Database = Depends(get_db)):
    return driver_ratings(db, driver_id)


# Bookings
@app.post("/bookings", status_code=201)
def create_booking(payload: BookingCreate, user: dict = Depends(require_roles(UserKind.CUSTOMER)),
                   ledger: BookingLedger = Depends(get_ledger)):
    booking = ledger.create(
        user["id"],
        payload.pickup_location,
        payload.dropoff_location,
        payload.fare,
        payload.distance,
    )
    return {"message": "Booking created, waiting for a driver", "booking": serialize(booking)}


@app.get("/bookings/pending")
def list_pending_bookings(limit: Optional[int] = Query(None, ge=1), skip: int = Query(0, ge=0),
                          user: dict = Depends(require_roles(UserKind.DRIVER)),
                          ledger: BookingLedger = Depends(get_ledger)):
    return [serialize(b) for b in ledger.list_pending(limit=limit, skip=skip)]


@app.get("/bookings/my-history")
def booking_history(limit: Optional[int] = Query(None, ge=1), skip: int = Query(0, ge=0),
                    user: dict = Depends(require_roles(UserKind.CUSTOMER)),
                    ledger: BookingLedger = Depends(get_ledger)):
    return [serialize(b) for b in ledger.list_history(user["id"], limit=limit, skip=skip)]


@app.patch("/bookings/{booking_id}/accept")
def accept_booking(booking_id: str, user: dict = Depends(require_roles(UserKind.DRIVER)),
                   ledger: BookingLedger = Depends(get_ledger)):
    booking = ledger.claim(booking_id, user["id"])
    return {"message": "Job accepted, please pick up the customer", "booking": serialize(booking)}


@app.patch("/bookings/{booking_id}/cancel")
def cancel_booking(booking_id: str, user: dict = Depends(require_roles(UserKind.CUSTOMER)),
                   ledger: BookingLedger = Depends(get_ledger)):
    booking = ledger.cancel(booking_id, user["id"])
    return {"message": "Booking cancelled", "booking": serialize(booking)}


@app.post("/bookings/{booking_id}/rate")
def rate_booking(booking_id: str, payload: RatingRequest, user: dict = Depends(require_roles(UserKind.CUSTOMER)),
                 ledger: BookingLedger = Depends(get_ledger)):
    booking, average = ledger.rate(booking_id, user["id"], payload.rating, payload.review)
    return {
        "message": "Thank you for your rating!",
        "rating": booking["rating"],
        "newDriverAverage": average,
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
