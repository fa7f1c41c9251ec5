# Conversational booking module
from app.domain.booking.session import BookingSession, BookingStep, DoctorSnapshot, PatientDraft
from app.domain.booking.machine import BookingReply, BookingStateMachine, ReplyOutcome
from app.domain.booking.store import BookingSessionStore, InMemoryBookingSessionStore

__all__ = [
    "BookingSession",
    "BookingStep",
    "DoctorSnapshot",
    "PatientDraft",
    "BookingReply",
    "BookingStateMachine",
    "ReplyOutcome",
    "BookingSessionStore",
    "InMemoryBookingSessionStore",
]
