"""
Shared fixtures: a fresh in-memory SQLite database per test, seeded with the
five roles, plus small factories for the rows most tests need.
"""
from datetime import datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from database import Base, seed_roles
import models, store


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = Session(bind=engine)
    seed_roles(session)
    yield session
    session.close()


@pytest.fixture
def role_id(db):
    def lookup(name):
        return db.query(models.Role.id).filter(models.Role.name == name).scalar()
    return lookup


@pytest.fixture
def make_user(db, role_id):
    counter = {"n": 0}

    def factory(role="Patient", **fields):
        counter["n"] += 1
        values = {
            "first_name": "Test",
            "last_name": f"User{counter['n']}",
            "email": f"user{counter['n']}@example.com",
            "password_hash": "not-a-real-hash",
        }
        values.update(fields)
        return store.insert(db, models.User(role_id=role_id(role), **values))
    return factory


@pytest.fixture
def make_doctor(db, make_user):
    def factory(**fields):
        user = make_user(role="Doctor")
        return store.insert(db, models.Doctor(user_id=user.id, **fields))
    return factory


@pytest.fixture
def make_patient(db, make_user):
    def factory(**fields):
        user = make_user(role="Patient")
        return store.insert(db, models.Patient(user_id=user.id, **fields))
    return factory


@pytest.fixture
def make_appointment(db):
    def factory(patient, doctor, start=datetime(2030, 5, 6, 9, 0), end=datetime(2030, 5, 6, 10, 0), **fields):
        return store.insert(db, models.Appointment(patient_id=patient.id, doctor_id=doctor.id,
                                                   scheduled_start=start, scheduled_end=end, **fields))
    return factory


@pytest.fixture
def make_availability(db):
    def factory(doctor, day_of_week=1, start=time(9, 0), end=time(12, 0), **fields):
        return store.insert(db, models.DoctorAvailability(doctor_id=doctor.id, day_of_week=day_of_week,
                                                          start_time=start, end_time=end, **fields))
    return factory
