# reservation/exceptions.py

"""
Domain errors raised by the reservation services.

Every error carries a machine readable ``code``, a default human readable
message and the HTTP status the API answers with.
"""


class ReservationError(Exception):
    code = "reservation_error"
    default_message = "The request could not be completed."
    status_code = 400

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ReservationError):
    code = "not_found"
    default_message = "Reservation not found."
    status_code = 404


class TableNotFound(NotFound):
    code = "table_not_found"
    default_message = "Table not found."


class SlotNotAvailable(ReservationError):
    code = "slot_not_available"
    default_message = "Requested time is not available."
    status_code = 409


class SlotNoLongerAvailable(SlotNotAvailable):
    code = "slot_no_longer_available"
    default_message = "Selected time is no longer available."


class PartyTooLarge(ReservationError):
    code = "party_too_large"
    default_message = "No table is large enough for this party."


class InvalidIdentity(ReservationError):
    code = "invalid_identity"
    default_message = "Provide exactly one of subscriber or guest contact."


class ArrivedTooEarly(ReservationError):
    code = "arrived_too_early"
    default_message = "Check-in is not open yet for this reservation."


class ArrivedTooLate(ReservationError):
    code = "arrived_too_late"
    default_message = "The check-in window for this reservation has passed."


class ReservationNotActive(ReservationError):
    code = "reservation_not_active"
    default_message = "Reservation is not in an active state."
    status_code = 409


class TableNotOccupied(ReservationError):
    code = "table_not_occupied"
    default_message = "Table is not occupied."
    status_code = 409


class TableOccupied(ReservationError):
    code = "table_occupied"
    default_message = "Table is occupied right now."
    status_code = 409


class TableNumberTaken(ReservationError):
    code = "table_number_taken"
    default_message = "Table number already exists."
    status_code = 409


class CodeGenerationExhausted(ReservationError):
    code = "code_generation_exhausted"
    default_message = "Could not generate a unique confirmation code."
    status_code = 503


class StorageFailure(ReservationError):
    code = "storage_failure"
    default_message = "Failed to interact with the database."
    status_code = 503


class InvalidPartySize(ReservationError):
    code = "invalid_party_size"
    default_message = "Party size must be at least 1."
