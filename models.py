from database import Base
from sqlalchemy import (Column, Integer, BigInteger, SmallInteger, String, Text, Numeric, ForeignKey, DATE, TIME,
                        DateTime, Enum, Table, CheckConstraint, Index, event, text)
from sqlalchemy.dialects import mysql
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import relationship
from sqlalchemy.schema import CreateColumn
from sqlalchemy.sql import func
import errors

APPOINTMENT_STATUSES = ("REQUESTED", "CONFIRMED", "RESCHEDULED", "COMPLETED", "CANCELLED", "NO_SHOW")
PAYMENT_METHODS = ("CASH", "CARD", "M-PESA", "INTASEND", "OTHER")
PAYMENT_STATUSES = ("PENDING", "COMPLETED", "FAILED", "REFUNDED")

# Statuses that no longer hold the doctor's time.
INACTIVE_APPOINTMENT_STATUSES = ("CANCELLED", "NO_SHOW")

DEFAULT_CURRENCY = "KES"
DEFAULT_PAYMENT_METHOD = "INTASEND"

MYSQL_OPTIONS = {"mysql_engine": "InnoDB", "mysql_charset": "utf8mb4"}


def _created_at_column():
    return Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))


def _updated_at_column():
    return Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"), onupdate=func.now(),
                  info={"mysql_on_update_now": True})


@compiles(CreateColumn, "mysql")
def _mysql_on_update_now(element, compiler, **kw):
    # ON UPDATE CURRENT_TIMESTAMP for columns flagged in info.
    colspec = compiler.visit_create_column(element, **kw)
    if colspec and element.element.info.get("mysql_on_update_now"):
        colspec += " ON UPDATE CURRENT_TIMESTAMP"
    return colspec


doctor_specialties = Table(
    "doctor_specialties",
    Base.metadata,
    Column("doctor_id", Integer, ForeignKey("doctors.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_ds_doctor"), primary_key=True),
    Column("specialty_id", Integer, ForeignKey("specialties.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_ds_specialty"), primary_key=True),
    **MYSQL_OPTIONS,
)

clinic_doctors = Table(
    "clinic_doctors",
    Base.metadata,
    Column("clinic_id", Integer, ForeignKey("clinics.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_cd_clinic"), primary_key=True),
    Column("doctor_id", Integer, ForeignKey("doctors.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_cd_doctor"), primary_key=True),
    **MYSQL_OPTIONS,
)


class Role(Base):
    __tablename__ = "roles"
    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False, unique=True)
    description = Column(String(255))
    __table_args__ = (CheckConstraint("name <> ''", name="ck_roles_name_not_empty"), MYSQL_OPTIONS)

    users = relationship("User", back_populates="role", passive_deletes="all")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="RESTRICT", onupdate="CASCADE", name="fk_users_role"), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(30))
    date_of_birth = Column(DATE)
    created_at = _created_at_column()
    updated_at = _updated_at_column()
    __table_args__ = MYSQL_OPTIONS

    role = relationship("Role", back_populates="users")
    doctor = relationship("Doctor", back_populates="user", uselist=False, cascade="save-update, merge", passive_deletes="all")
    patient = relationship("Patient", back_populates="user", uselist=False, cascade="save-update, merge", passive_deletes="all")
    audit_logs = relationship("AuditLog", back_populates="user", passive_deletes="all")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Doctor(Base):
    __tablename__ = "doctors"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_doctors_user"), nullable=False, unique=True)
    license_number = Column(String(100), unique=True)
    bio = Column(Text)
    years_experience = Column(Integer, default=0, server_default="0")
    created_at = _created_at_column()
    __table_args__ = MYSQL_OPTIONS

    user = relationship("User", back_populates="doctor")
    specialties = relationship("Specialty", secondary=doctor_specialties, back_populates="doctors", passive_deletes=True)
    clinics = relationship("Clinic", secondary=clinic_doctors, back_populates="doctors", passive_deletes=True)
    availabilities = relationship("DoctorAvailability", back_populates="doctor", cascade="save-update, merge", passive_deletes="all")
    appointments = relationship("Appointment", back_populates="doctor", cascade="save-update, merge", passive_deletes="all")
    prescriptions = relationship("Prescription", back_populates="prescriber", passive_deletes="all")
    medical_records = relationship("MedicalRecord", back_populates="doctor", passive_deletes="all")


class Patient(Base):
    __tablename__ = "patients"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_patients_user"), nullable=False, unique=True)
    medical_record_number = Column(String(100), unique=True)
    emergency_contact_name = Column(String(150))
    emergency_contact_phone = Column(String(30))
    created_at = _created_at_column()
    __table_args__ = MYSQL_OPTIONS

    user = relationship("User", back_populates="patient")
    appointments = relationship("Appointment", back_populates="patient", cascade="save-update, merge", passive_deletes="all")
    medical_records = relationship("MedicalRecord", back_populates="patient", cascade="save-update, merge", passive_deletes="all")
    payments = relationship("Payment", back_populates="patient", cascade="save-update, merge", passive_deletes="all")


class Specialty(Base):
    __tablename__ = "specialties"
    id = Column(Integer, primary_key=True)
    name = Column(String(150), nullable=False, unique=True)
    description = Column(String(255))
    __table_args__ = MYSQL_OPTIONS

    doctors = relationship("Doctor", secondary=doctor_specialties, back_populates="specialties", passive_deletes=True)


class Clinic(Base):
    __tablename__ = "clinics"
    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    address = Column(String(300))
    phone = Column(String(30))
    email = Column(String(255))
    created_at = _created_at_column()
    __table_args__ = MYSQL_OPTIONS

    doctors = relationship("Doctor", secondary=clinic_doctors, back_populates="clinics", passive_deletes=True)
    availabilities = relationship("DoctorAvailability", back_populates="clinic", passive_deletes="all")
    appointments = relationship("Appointment", back_populates="clinic", passive_deletes="all")


class DoctorAvailability(Base):
    __tablename__ = "doctor_availabilities"
    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_avail_doctor"), nullable=False)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="SET NULL", onupdate="CASCADE", name="fk_avail_clinic"))
    day_of_week = Column(SmallInteger().with_variant(mysql.TINYINT(), "mysql"), nullable=False)  # 0 = Sunday .. 6 = Saturday
    start_time = Column(TIME, nullable=False)
    end_time = Column(TIME, nullable=False)
    note = Column(String(255))
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_avail_day_of_week"),
        CheckConstraint("start_time < end_time", name="ck_avail_time_order"),
        MYSQL_OPTIONS,
    )

    doctor = relationship("Doctor", back_populates="availabilities")
    clinic = relationship("Clinic", back_populates="availabilities")


class Appointment(Base):
    __tablename__ = "appointments"
    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_appt_patient"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_appt_doctor"), nullable=False)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="SET NULL", onupdate="CASCADE", name="fk_appt_clinic"))
    scheduled_start = Column(DateTime, nullable=False)
    scheduled_end = Column(DateTime, nullable=False)
    status = Column(Enum(*APPOINTMENT_STATUSES, name="appointment_status", create_constraint=True),
                    nullable=False, default="REQUESTED", server_default="REQUESTED")
    reason = Column(String(255))
    created_at = _created_at_column()
    updated_at = _updated_at_column()
    __table_args__ = (
        CheckConstraint("scheduled_start < scheduled_end", name="ck_appt_time_order"),
        # Speeds up the caller's overlap check; overlaps themselves are not rejected here.
        Index("idx_appt_doctor_time", "doctor_id", "scheduled_start", "scheduled_end"),
        MYSQL_OPTIONS,
    )

    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    clinic = relationship("Clinic", back_populates="appointments")
    prescriptions = relationship("Prescription", back_populates="appointment", cascade="save-update, merge", passive_deletes="all")
    payments = relationship("Payment", back_populates="appointment", passive_deletes="all")
    medical_records = relationship("MedicalRecord", back_populates="appointment", passive_deletes="all")


class MedicalRecord(Base):
    __tablename__ = "medical_records"
    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_mr_patient"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="SET NULL", onupdate="CASCADE", name="fk_mr_doctor"))
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL", onupdate="CASCADE", name="fk_mr_appointment"))
    record_date = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    summary = Column(Text)
    details = Column(Text)
    __table_args__ = MYSQL_OPTIONS

    patient = relationship("Patient", back_populates="medical_records")
    doctor = relationship("Doctor", back_populates="medical_records")
    appointment = relationship("Appointment", back_populates="medical_records")


class Prescription(Base):
    __tablename__ = "prescriptions"
    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_rx_appointment"), nullable=False)
    prescribed_by = Column(Integer, ForeignKey("doctors.id", ondelete="RESTRICT", onupdate="CASCADE", name="fk_rx_doctor"), nullable=False)
    prescription_date = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    medication = Column(Text, nullable=False)
    dosage_instructions = Column(Text)
    notes = Column(Text)
    __table_args__ = MYSQL_OPTIONS

    appointment = relationship("Appointment", back_populates="prescriptions")
    prescriber = relationship("Doctor", back_populates="prescriptions")


class Payment(Base):
    __tablename__ = "payments"
    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL", onupdate="CASCADE", name="fk_pay_appointment"))
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE", onupdate="CASCADE", name="fk_pay_patient"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default=DEFAULT_CURRENCY, server_default=DEFAULT_CURRENCY)
    payment_method = Column(Enum(*PAYMENT_METHODS, name="payment_method", create_constraint=True),
                            nullable=False, default=DEFAULT_PAYMENT_METHOD, server_default=DEFAULT_PAYMENT_METHOD)
    status = Column(Enum(*PAYMENT_STATUSES, name="payment_status", create_constraint=True),
                    nullable=False, default="PENDING", server_default="PENDING")
    transaction_reference = Column(String(255), unique=True)
    paid_at = Column(DateTime)
    created_at = _created_at_column()
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_pay_amount_non_negative"), MYSQL_OPTIONS)

    patient = relationship("Patient", back_populates="payments")
    appointment = relationship("Appointment", back_populates="payments")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    # SQLite only autoincrements INTEGER PRIMARY KEY.
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL", onupdate="CASCADE", name="fk_audit_user"))
    action = Column(String(150), nullable=False)
    object_type = Column(String(100))
    object_id = Column(String(100))
    details = Column(Text)
    created_at = _created_at_column()
    __table_args__ = MYSQL_OPTIONS

    user = relationship("User", back_populates="audit_logs")


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise errors.ConstraintViolation(errors.APPEND_ONLY, f"audit_logs row {target.id} cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise errors.ConstraintViolation(errors.APPEND_ONLY, f"audit_logs row {target.id} cannot be deleted")
