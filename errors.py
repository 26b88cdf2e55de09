from sqlalchemy.exc import DBAPIError

UNIQUE = "unique"
FOREIGN_KEY = "foreign_key"
CHECK = "check"
NOT_NULL = "not_null"
APPEND_ONLY = "append_only"
UNKNOWN = "unknown"

# PostgreSQL SQLSTATE class 23 codes.
_PG_CODES = {
    "23505": UNIQUE,
    "23503": FOREIGN_KEY,
    "23514": CHECK,
    "23502": NOT_NULL,
}

# MySQL server error numbers. 1265 is the strict-mode rejection of a value
# outside an ENUM set.
_MYSQL_CODES = {
    1062: UNIQUE,
    1451: FOREIGN_KEY,
    1452: FOREIGN_KEY,
    3819: CHECK,
    1265: CHECK,
    1048: NOT_NULL,
}

# SQLite only reports a message.
_SQLITE_PREFIXES = (
    ("UNIQUE constraint failed", UNIQUE),
    ("FOREIGN KEY constraint failed", FOREIGN_KEY),
    ("CHECK constraint failed", CHECK),
    ("NOT NULL constraint failed", NOT_NULL),
)


class StoreError(Exception):
    pass


class ConstraintViolation(StoreError):
    """A write was rejected by a unique, foreign-key, check or not-null rule."""

    def __init__(self, kind, detail):
        super().__init__(f"{kind} constraint violated: {detail}")
        self.kind = kind
        self.detail = detail

    @classmethod
    def from_dbapi_error(cls, exc: DBAPIError):
        return cls(classify(exc), str(exc.orig))


class NotFound(StoreError):
    def __init__(self, model, ident):
        super().__init__(f"{model.__name__} {ident!r} not found")
        self.model = model
        self.ident = ident


class AppointmentConflict(StoreError):
    """The doctor already has an active appointment overlapping the range."""

    def __init__(self, doctor_id, conflicting_ids):
        super().__init__(
            f"Doctor {doctor_id} already booked for appointment(s) {', '.join(map(str, conflicting_ids))}"
        )
        self.doctor_id = doctor_id
        self.conflicting_ids = list(conflicting_ids)


def classify(exc: DBAPIError):
    """Map a driver-level integrity/data error onto a violation kind."""
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _PG_CODES:
        return _PG_CODES[sqlstate]
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and args[0] in _MYSQL_CODES:
        return _MYSQL_CODES[args[0]]
    message = str(orig)
    for prefix, kind in _SQLITE_PREFIXES:
        if message.startswith(prefix):
            return kind
    return UNKNOWN
