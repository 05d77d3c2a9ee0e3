"""
Service-layer errors.
Raised by the trip and mileage services; create_app() turns them into JSON responses.
"""


class TripLogError(Exception):
    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Conflict(TripLogError):
    status_code = 409
    default_detail = "Conflict"


class NotFound(TripLogError):
    status_code = 404
    default_detail = "Not found"


class BadRequest(TripLogError):
    status_code = 400
    default_detail = "Bad request"


class EscalationFailure(TripLogError):
    """Incident report creation failed. Never fatal to a trip."""
    status_code = 502
    default_detail = "Incident report could not be created"
