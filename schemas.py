"""
Database Schemas

MongoDB collection schemas as Pydantic models.
Model name is converted to lowercase for the collection name:
- Customer -> "customer" collection
- Driver -> "driver" collection
- Admin -> "admin" collection
- Booking -> "booking" collection

Documents are stored with camelCase keys (the same keys the JSON API speaks);
the models expose snake_case attributes through aliases.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictInt
from pydantic.alias_generators import to_camel


class UserKind(str, Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# --------------------------------------------------
# Identity collections

class Customer(CamelModel):
    """
    Customers collection schema
    Collection name: "customer"
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address, unique across all user kinds")
    password: str = Field(..., description="bcrypt hash")
    phone: Optional[str] = None
    role: Literal["customer"] = "customer"


class Driver(CamelModel):
    """
    Drivers collection schema
    Collection name: "driver"
    """
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    phone: Optional[str] = None
    vehicle_type: Optional[str] = None
    status: str = "available"
    role: Literal["driver"] = "driver"
    average_rating: float = Field(0, ge=0, le=5)
    total_ratings: int = Field(0, ge=0)


class Admin(CamelModel):
    """
    Admins collection schema
    Collection name: "admin"
    """
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    role: Literal["admin"] = "admin"


# --------------------------------------------------
# Bookings

class Booking(CamelModel):
    """
    Bookings collection schema
    Collection name: "booking"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    customer_id: ObjectId
    driver_id: Optional[ObjectId] = None
    pickup_location: str = Field(..., min_length=1)
    dropoff_location: str = Field(..., min_length=1)
    fare: float = Field(..., ge=0, allow_inf_nan=False)
    distance: float = Field(..., ge=0, allow_inf_nan=False)
    status: BookingStatus = BookingStatus.PENDING
    rating: Optional[int] = Field(None, ge=1, le=5)
    review: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --------------------------------------------------
# Request bodies

class BookingCreate(CamelModel):
    pickup_location: str
    dropoff_location: str
    fare: float = Field(..., allow_inf_nan=False)
    distance: float = Field(..., allow_inf_nan=False)


class RatingRequest(CamelModel):
    rating: StrictInt
    review: Optional[str] = None


class UserRegistration(CamelModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    role: Literal["customer", "admin"] = "customer"


class DriverRegistration(CamelModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    vehicle_type: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class CustomerUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)


class DriverUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    vehicle_type: Optional[str] = None


class DriverStatusUpdate(CamelModel):
    status: str = Field(..., min_length=1)
