"""
Agent API Routes

Conversational booking, structured agent booking and the agent webhook.
"""

from fastapi import APIRouter, Depends, status

from app.api.deps import get_agent_booking_service, get_conversation_service
from app.domain.booking.service import AgentBookingService, BookingConversationService
from app.api.v1.agent.schemas import (
    AgentMessageRequest, AgentMessageResponse, SessionResetResponse,
    BookAppointmentRequest, BookAppointmentResponse,
    PatientSummary, DoctorSummary, WebhookRequest
)

router = APIRouter(prefix="/agent", tags=["Agent"])


@router.post("/messages", response_model=AgentMessageResponse)
async def post_message(
    payload: AgentMessageRequest,
    service: BookingConversationService = Depends(get_conversation_service)
):
    """Run one booking dialogue step for a conversation"""
    session, reply = await service.handle_message(payload.conversation_id, payload.message)
    return AgentMessageResponse(
        conversation_id=payload.conversation_id,
        step=session.step,
        outcome=reply.outcome,
        message=reply.message,
        appointment_id=reply.appointment_id,
        available_slots=reply.available_slots,
        session_expired=reply.session_expired
    )


@router.delete("/sessions/{conversation_id}", response_model=SessionResetResponse)
async def reset_session(
    conversation_id: str,
    service: BookingConversationService = Depends(get_conversation_service)
):
    """Discard a conversation's booking progress"""
    discarded = await service.reset(conversation_id)
    return SessionResetResponse(conversation_id=conversation_id, discarded=discarded)


@router.post("/book-appointment", response_model=BookAppointmentResponse, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    payload: BookAppointmentRequest,
    service: AgentBookingService = Depends(get_agent_booking_service)
):
    """Book a slot from structured agent data"""
    appointment, patient, doctor = await service.book_appointment(
        patient_info=payload.patient_info.model_dump(),
        doctor_id=payload.doctor_id,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        reason=payload.reason
    )
    return BookAppointmentResponse(
        appointment_id=appointment.id,
        patient=PatientSummary.model_validate(patient),
        doctor=DoctorSummary.model_validate(doctor)
    )


@router.post("/webhook")
async def agent_webhook(
    payload: WebhookRequest,
    service: AgentBookingService = Depends(get_agent_booking_service)
):
    """Dispatch an agent event: appointment_request, availability_check or patient_inquiry"""
    return await service.handle_webhook(payload.event_type, payload.data)
