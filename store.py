import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, DataError, NoResultFound
import models, errors, utils
from database import SQLITE_BEGIN_OPTION

logger = logging.getLogger(__name__)


def _commit(db: Session):
    try:
        db.commit()
    except (IntegrityError, DataError) as exc:
        db.rollback()
        violation = errors.ConstraintViolation.from_dbapi_error(exc)
        logger.warning("Write rejected (%s): %s", violation.kind, violation.detail)
        raise violation from exc
    except errors.ConstraintViolation as violation:
        db.rollback()
        logger.warning("Write rejected (%s): %s", violation.kind, violation.detail)
        raise


def insert(db: Session, instance):
    db.add(instance)
    _commit(db)
    db.refresh(instance)
    logger.debug("Inserted %s %s", type(instance).__name__, instance.id)
    return instance


def update(db: Session, instance, **changes):
    """Apply column changes to a persistent row and commit them."""
    model = type(instance)
    for key, value in changes.items():
        if not hasattr(model, key):
            raise AttributeError(f"{model.__name__} has no attribute {key!r}")
        setattr(instance, key, value)
    _commit(db)
    db.refresh(instance)
    return instance


def delete(db: Session, instance):
    db.delete(instance)
    _commit(db)
    logger.debug("Deleted %s", type(instance).__name__)


def get(db: Session, model, ident):
    instance = db.get(model, ident)
    if instance is None:
        raise errors.NotFound(model, ident)
    return instance


def create_user(db: Session, role_name, email, password, first_name, last_name, **fields):
    role = db.query(models.Role).filter(models.Role.name == role_name).one_or_none()
    if not role:
        raise errors.NotFound(models.Role, role_name)
    user = models.User(role_id=role.id, email=email, password_hash=utils.hash(password),
                       first_name=first_name, last_name=last_name, **fields)
    return insert(db, user)


def record_audit(db: Session, action, user_id=None, object_type=None, object_id=None, details=None):
    entry = models.AuditLog(user_id=user_id, action=action, object_type=object_type,
                            object_id=None if object_id is None else str(object_id), details=details)
    return insert(db, entry)


def set_appointment_status(db: Session, appointment, status, user_id=None):
    old_status = appointment.status
    appointment.status = status
    db.add(models.AuditLog(user_id=user_id, action="appointment.status_changed", object_type="appointment",
                           object_id=str(appointment.id), details=f"{old_status} -> {status}"))
    _commit(db)
    db.refresh(appointment)
    logger.info("Appointment %s: %s -> %s", appointment.id, old_status, status)
    return appointment


def find_overlapping_appointments(db: Session, doctor_id, start, end, exclude_id=None, lock=False):
    query = (db.query(models.Appointment)
             .filter(models.Appointment.doctor_id == doctor_id)
             .filter(models.Appointment.scheduled_start < end)
             .filter(models.Appointment.scheduled_end > start)
             .filter(models.Appointment.status.not_in(models.INACTIVE_APPOINTMENT_STATUSES)))
    if exclude_id is not None:
        query = query.filter(models.Appointment.id != exclude_id)
    if lock:
        query = query.with_for_update()
    return query.order_by(models.Appointment.scheduled_start).all()


def book_appointment(db: Session, patient_id, doctor_id, start, end, clinic_id=None, reason=None):
    """Insert an appointment unless the doctor is already booked in that range.

    Runs in a fresh transaction. The doctor row and the overlapping range are
    read with FOR UPDATE, so a concurrent booking for the same doctor waits
    until this one commits and then sees it. SQLite has no row locks; there
    the transaction starts with BEGIN IMMEDIATE and holds the database write
    lock until commit.
    """
    db.commit()
    db.connection(execution_options={SQLITE_BEGIN_OPTION: "IMMEDIATE"})
    try:
        db.query(models.Doctor).filter(models.Doctor.id == doctor_id).with_for_update().one()
    except NoResultFound:
        db.rollback()
        raise errors.NotFound(models.Doctor, doctor_id)
    conflicts = find_overlapping_appointments(db, doctor_id, start, end, lock=True)
    if conflicts:
        db.rollback()
        raise errors.AppointmentConflict(doctor_id, [appt.id for appt in conflicts])
    appointment = models.Appointment(patient_id=patient_id, doctor_id=doctor_id, clinic_id=clinic_id,
                                     scheduled_start=start, scheduled_end=end, reason=reason)
    return insert(db, appointment)
