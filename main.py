import argparse
import json
import logging
import sys

from sqlalchemy.exc import OperationalError

from config import settings
from database import engine, init_db, get_db
import models, schemas, ddl, errors, store

# Rows the show command can print, with the read model used for each.
OUTPUTS = {
    "role": (models.Role, schemas.RoleOutput),
    "user": (models.User, schemas.UserOutput),
    "doctor": (models.Doctor, schemas.DoctorOutput),
    "patient": (models.Patient, schemas.PatientOutput),
    "availability": (models.DoctorAvailability, schemas.AvailabilityOutput),
    "appointment": (models.Appointment, schemas.AppointmentOutput),
    "payment": (models.Payment, schemas.PaymentOutput),
}


def _print_json(payload):
    json.dump(payload, sys.stdout, indent=2)
    sys.stdout.write("\n")


def cmd_init(args):
    init_db(engine)
    return 0


def cmd_ddl(args):
    sys.stdout.write(ddl.render_schema(args.dialect))
    return 0


def cmd_roles(args):
    with get_db() as db:
        roles = db.query(models.Role).order_by(models.Role.id).all()
        payload = [schemas.RoleOutput.model_validate(role).model_dump() for role in roles]
    _print_json(payload)
    return 0


def cmd_show(args):
    model, output = OUTPUTS[args.kind]
    with get_db() as db:
        payload = output.model_validate(store.get(db, model, args.id)).model_dump(mode="json")
    _print_json(payload)
    return 0


def cmd_schedule(args):
    with get_db() as db:
        appointments = (db.query(models.Appointment)
                        .filter(models.Appointment.doctor_id == args.doctor_id)
                        .order_by(models.Appointment.scheduled_start).all())
        payload = [schemas.AppointmentOutput.model_validate(appt).model_dump(mode="json") for appt in appointments]
    _print_json(payload)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="clinic-db", description="Clinic booking database tools")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="create all tables and seed the roles")
    init.set_defaults(func=cmd_init)

    dump = sub.add_parser("ddl", help="print the schema as SQL")
    dump.add_argument("--dialect", choices=sorted(ddl.DIALECTS), default="mysql")
    dump.set_defaults(func=cmd_ddl)

    roles = sub.add_parser("roles", help="list the roles as JSON")
    roles.set_defaults(func=cmd_roles)

    show = sub.add_parser("show", help="print one row as JSON")
    show.add_argument("kind", choices=sorted(OUTPUTS))
    show.add_argument("id", type=int)
    show.set_defaults(func=cmd_show)

    schedule = sub.add_parser("schedule", help="list a doctor's appointments as JSON")
    schedule.add_argument("doctor_id", type=int)
    schedule.set_defaults(func=cmd_schedule)
    return parser


def main(argv=None):
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except errors.NotFound as exc:
        print(f"clinic-db: {exc}", file=sys.stderr)
        return 1
    except OperationalError as exc:
        print(f"clinic-db: cannot read the database ({exc.orig}); run 'clinic-db init' first", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
