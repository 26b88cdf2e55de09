"""
Appointment storage, the overlap check and guarded booking.
"""
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from database import init_db
import errors, models, store


def at(hour, minute=0):
    return datetime(2030, 5, 6, hour, minute)


def test_overlapping_appointments_are_stored(db, make_patient, make_doctor, make_appointment):
    """Plain inserts leave overlap prevention to the caller."""
    doctor = make_doctor()
    make_appointment(make_patient(), doctor, start=at(9), end=at(10))
    make_appointment(make_patient(), doctor, start=at(9, 30), end=at(10, 30))
    make_appointment(make_patient(), doctor, start=at(9), end=at(10))

    assert db.query(models.Appointment).filter(models.Appointment.doctor_id == doctor.id).count() == 3


class TestFindOverlapping:

    @pytest.fixture
    def booked(self, make_patient, make_doctor, make_appointment):
        doctor = make_doctor()
        appt = make_appointment(make_patient(), doctor, start=at(9), end=at(10))
        return doctor, appt

    @pytest.mark.parametrize("start,end", [
        (at(9), at(10)),
        (at(8, 30), at(9, 1)),
        (at(9, 59), at(11)),
        (at(9, 15), at(9, 45)),
        (at(8), at(12)),
    ])
    def test_intersecting_ranges_found(self, db, booked, start, end):
        doctor, appt = booked

        assert store.find_overlapping_appointments(db, doctor.id, start, end) == [appt]

    @pytest.mark.parametrize("start,end", [
        (at(8), at(9)),
        (at(10), at(11)),
    ])
    def test_touching_ranges_do_not_overlap(self, db, booked, start, end):
        doctor, _ = booked

        assert store.find_overlapping_appointments(db, doctor.id, start, end) == []

    def test_other_doctors_ignored(self, db, booked, make_doctor):
        assert store.find_overlapping_appointments(db, make_doctor().id, at(9), at(10)) == []

    def test_excluded_appointment_ignored(self, db, booked):
        doctor, appt = booked

        assert store.find_overlapping_appointments(db, doctor.id, at(9), at(10), exclude_id=appt.id) == []

    @pytest.mark.parametrize("status", ["CANCELLED", "NO_SHOW"])
    def test_inactive_appointments_ignored(self, db, booked, status):
        doctor, appt = booked
        store.update(db, appt, status=status)

        assert store.find_overlapping_appointments(db, doctor.id, at(9), at(10)) == []


class TestBookAppointment:

    def test_books_free_slot(self, db, make_patient, make_doctor):
        patient, doctor = make_patient(), make_doctor()

        appt = store.book_appointment(db, patient.id, doctor.id, at(14), at(14, 30), reason="Fever")

        assert appt.id is not None
        assert appt.status == "REQUESTED"
        assert appt.reason == "Fever"

    def test_rejects_overlap(self, db, make_patient, make_doctor):
        doctor = make_doctor()
        first = store.book_appointment(db, make_patient().id, doctor.id, at(9), at(10))

        with pytest.raises(errors.AppointmentConflict) as exc:
            store.book_appointment(db, make_patient().id, doctor.id, at(9, 30), at(10, 30))

        assert exc.value.conflicting_ids == [first.id]
        assert exc.value.doctor_id == doctor.id
        assert db.query(models.Appointment).count() == 1

    def test_back_to_back_bookings_allowed(self, db, make_patient, make_doctor):
        doctor, patient = make_doctor(), make_patient()
        store.book_appointment(db, patient.id, doctor.id, at(9), at(10))
        store.book_appointment(db, patient.id, doctor.id, at(10), at(11))

        assert db.query(models.Appointment).count() == 2

    def test_cancelled_slot_can_be_rebooked(self, db, make_patient, make_doctor):
        doctor = make_doctor()
        first = store.book_appointment(db, make_patient().id, doctor.id, at(9), at(10))
        store.set_appointment_status(db, first, "CANCELLED")

        second = store.book_appointment(db, make_patient().id, doctor.id, at(9), at(9, 45))

        assert second.id != first.id

    def test_unknown_doctor(self, db, make_patient):
        with pytest.raises(errors.NotFound):
            store.book_appointment(db, make_patient().id, 777, at(9), at(10))

    def test_time_order_still_enforced(self, db, make_patient, make_doctor):
        with pytest.raises(errors.ConstraintViolation) as exc:
            store.book_appointment(db, make_patient().id, make_doctor().id, at(10), at(9))

        assert exc.value.kind == errors.CHECK


class TestConcurrentBooking:

    @pytest.fixture
    def clinic_file(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'clinic.db'}", connect_args={"timeout": 0.2})
        init_db(engine)
        with Session(bind=engine) as db:
            doctor_user = store.create_user(db, "Doctor", "otieno@example.com", "pw", "Paul", "Otieno")
            doctor = store.insert(db, models.Doctor(user_id=doctor_user.id))
            patients = []
            for n in range(2):
                user = store.create_user(db, "Patient", f"patient{n}@example.com", "pw", "Pat", f"Ient{n}")
                patients.append(store.insert(db, models.Patient(user_id=user.id)).id)
            ids = doctor.id, patients
        yield engine, ids
        engine.dispose()

    def test_second_writer_waits_for_open_booking(self, clinic_file, monkeypatch):
        engine, (doctor_id, (first_patient, second_patient)) = clinic_file
        first, second = Session(bind=engine), Session(bind=engine)
        find = store.find_overlapping_appointments
        interleaved = []

        def book_between_check_and_insert(db, *args, **kwargs):
            if db is first and not interleaved:
                interleaved.append(True)
                with pytest.raises(OperationalError, match="database is locked"):
                    store.book_appointment(second, second_patient, doctor_id, at(9), at(10))
                second.rollback()
            return find(db, *args, **kwargs)

        monkeypatch.setattr(store, "find_overlapping_appointments", book_between_check_and_insert)
        store.book_appointment(first, first_patient, doctor_id, at(9, 30), at(10, 30))
        monkeypatch.undo()

        with pytest.raises(errors.AppointmentConflict):
            store.book_appointment(second, second_patient, doctor_id, at(9), at(10))

        assert interleaved
        assert second.query(models.Appointment).count() == 1
        first.close()
        second.close()


class TestStatusChanges:

    def test_status_change_is_audited(self, db, make_patient, make_doctor, make_appointment, make_user):
        receptionist = make_user(role="Receptionist")
        appt = make_appointment(make_patient(), make_doctor())

        store.set_appointment_status(db, appt, "CONFIRMED", user_id=receptionist.id)

        assert appt.status == "CONFIRMED"
        entry = db.query(models.AuditLog).one()
        assert entry.action == "appointment.status_changed"
        assert entry.object_type == "appointment"
        assert entry.object_id == str(appt.id)
        assert entry.details == "REQUESTED -> CONFIRMED"
        assert entry.user_id == receptionist.id

    def test_no_transition_rules(self, db, make_patient, make_doctor, make_appointment):
        appt = make_appointment(make_patient(), make_doctor(), status="COMPLETED")

        store.set_appointment_status(db, appt, "REQUESTED")

        assert appt.status == "REQUESTED"

    def test_unknown_status_rejected_and_not_audited(self, db, make_patient, make_doctor, make_appointment):
        appt = make_appointment(make_patient(), make_doctor())

        with pytest.raises(errors.ConstraintViolation):
            store.set_appointment_status(db, appt, "POSTPONED")

        assert appt.status == "REQUESTED"
        assert db.query(models.AuditLog).count() == 0
