"""Error taxonomy shared by the seat assignment flow."""


class SeatingError(Exception):
    """Base error carrying the HTTP status and the message shown to clients."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self):
        return {"error": self.message}


class ValidationError(SeatingError):
    """Malformed or missing input, rejected before touching the store."""


class NotRegistered(SeatingError):
    """No pre-registered attendee matches (phone, name, session)."""


class InsufficientSeats(SeatingError):
    """Fewer free seats than requested; nothing is allocated."""

    def __init__(self, requested: int, available: int):
        super().__init__("not enough seats are available for this request")
        self.requested = requested
        self.available = available


class Conflict(SeatingError):
    """The version-conditioned write matched zero rows."""

    status_code = 409

    def __init__(self, attendee_id: str, expected_version: int):
        super().__init__("seat was assigned by another request, please try again")
        self.attendee_id = attendee_id
        self.expected_version = expected_version

    def to_payload(self):
        return {"error": self.message, "conflict": True}


class StoreError(SeatingError):
    """Underlying read/write failure. Detail stays in server logs."""

    status_code = 500
    client_message = "an internal error occurred while assigning seats"

    def __init__(self, detail: str):
        super().__init__(self.client_message)
        self.detail = detail
