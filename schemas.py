from pydantic import BaseModel, ConfigDict, EmailStr
from typing import Optional, Literal
from datetime import date, time, datetime
from decimal import Decimal

AppointmentStatus = Literal["REQUESTED", "CONFIRMED", "RESCHEDULED", "COMPLETED", "CANCELLED", "NO_SHOW"]
PaymentMethod = Literal["CASH", "CARD", "M-PESA", "INTASEND", "OTHER"]
PaymentStatus = Literal["PENDING", "COMPLETED", "FAILED", "REFUNDED"]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class RoleOutput(ORMModel):
    id: int
    name: str
    description: Optional[str] = None

class UserOutput(ORMModel):
    id: int
    role_id: int
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    created_at: datetime
    updated_at: datetime

class DoctorOutput(ORMModel):
    id: int
    user_id: int
    license_number: Optional[str] = None
    bio: Optional[str] = None
    years_experience: Optional[int] = None
    created_at: datetime

class PatientOutput(ORMModel):
    id: int
    user_id: int
    medical_record_number: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    created_at: datetime

class AvailabilityOutput(ORMModel):
    id: int
    doctor_id: int
    clinic_id: Optional[int] = None
    day_of_week: int
    start_time: time
    end_time: time
    note: Optional[str] = None

class AppointmentOutput(ORMModel):
    id: int
    patient_id: int
    doctor_id: int
    clinic_id: Optional[int] = None
    scheduled_start: datetime
    scheduled_end: datetime
    status: AppointmentStatus
    reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class PaymentOutput(ORMModel):
    id: int
    appointment_id: Optional[int] = None
    patient_id: int
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    status: PaymentStatus
    transaction_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
