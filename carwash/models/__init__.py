"""
Database models module.
All SQLAlchemy models are exported from here for easy imports.
"""

from carwash.models.user import User, UserRole
from carwash.models.customer import Customer, Vehicle
from carwash.models.catalog import WashService, ServiceCategory, Bay, BayStatus
from carwash.models.job import (
    Job,
    JobItem,
    JobStatus,
    JobPaymentStatus,
    JobPriority,
    JobItemStatus,
)
from carwash.models.payment import Payment, PaymentMethod, PaymentStatus


__all__ = [
    "User",
    "UserRole",
    "Customer",
    "Vehicle",
    "WashService",
    "ServiceCategory",
    "Bay",
    "BayStatus",
    "Job",
    "JobItem",
    "JobStatus",
    "JobPaymentStatus",
    "JobPriority",
    "JobItemStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
]
