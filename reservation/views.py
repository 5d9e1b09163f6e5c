from rest_framework.views import APIView
from drf_spectacular.utils import extend_schema, OpenApiParameter
from rest_framework import generics, filters, status
from django_filters.rest_framework import DjangoFilterBackend

from config import permissions
from config.responses import envelope
from reservation.models import Reservation
from reservation.serializers import (
    AvailabilityQuerySerializer,
    AvailabilityResultSerializer,
    BillSerializer,
    CancelReservationSerializer,
    CheckInSerializer,
    ConfirmSlotSerializer,
    EditReservationSerializer,
    LostCodeSerializer,
    ReservationSerializer,
    SeatingSerializer,
    WaitlistEntrySerializer,
)
from reservation.services.availability import AvailabilityService
from reservation.services.billing import BillingService
from reservation.services.reservation import ReservationService
from reservation.services.seating import SeatingService
from reservation.services.waitlist import WaitlistService


class AvailabilityView(APIView):
    """
    API endpoint to search free times for a party on a date.
    Falls back to suggestions on the following days.
    """

    @extend_schema(
        parameters=[
            OpenApiParameter(name="date", type=str, required=True, description="Date (YYYY-MM-DD)"),
            OpenApiParameter(name="party_size", type=int, required=True),
        ],
        responses={200: AvailabilityResultSerializer},
    )
    def get(self, request):
        query_serializer = AvailabilityQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)
        data = query_serializer.validated_data

        result = AvailabilityService.find_availability(data["date"], data["party_size"])
        return envelope(result.message, AvailabilityResultSerializer(result).data)


class ConfirmReservationView(generics.GenericAPIView):
    """
    API endpoint to book a chosen slot.
    """

    serializer_class = ConfirmSlotSerializer

    @extend_schema(
        summary="Confirm a slot",
        responses={201: ReservationSerializer, 409: {"description": "Slot no longer available"}},
    )
    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        reservation = ReservationService.confirm_slot(
            date=data["date"],
            start_time=data["start_time"],
            party_size=data["party_size"],
            identity=serializer.get_identity(),
        )
        return envelope(
            f"Reservation confirmed. Your confirmation code is {reservation.confirmation_code}.",
            ReservationSerializer(reservation).data,
            status.HTTP_201_CREATED,
        )


class ReservationDetailView(generics.GenericAPIView):
    """
    Show or edit a reservation by its confirmation code.
    """

    serializer_class = EditReservationSerializer

    @extend_schema(responses={200: ReservationSerializer})
    def get(self, request, code):
        reservation = ReservationService.show_reservation(code)
        return envelope("Reservation found.", ReservationSerializer(reservation).data)

    @extend_schema(
        summary="Edit a reservation",
        description="Moves an upcoming reservation to a new slot. "
        "The reservation's own booking does not count against the new slot.",
        responses={200: ReservationSerializer},
    )
    def put(self, request, code):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        reservation = ReservationService.edit_reservation(
            code,
            new_date=data["date"],
            new_start_time=data["start_time"],
            new_party_size=data["party_size"],
            new_identity=serializer.get_identity(),
        )
        return envelope("Reservation updated.", ReservationSerializer(reservation).data)


class CancelReservationView(generics.GenericAPIView):
    """
    API endpoint to cancel an existing reservation.
    """

    serializer_class = CancelReservationSerializer

    @extend_schema(
        summary="Cancel a reservation",
        description="Cancels an upcoming or waiting reservation. Cancelling twice succeeds. "
        "A table held for the party is handed to the next waiting customer.",
        responses={
            200: ReservationSerializer,
            404: {"description": "Reservation not found"},
            409: {"description": "Reservation already seated, completed or missed"},
        },
    )
    def post(self, request, code):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reservation = ReservationService.cancel_reservation(
            code, reason=serializer.validated_data.get("reason", "")
        )
        return envelope("Reservation cancelled.", ReservationSerializer(reservation).data)


class LostCodeView(generics.GenericAPIView):
    """
    Re-send the confirmation code of the next upcoming reservation.
    """

    serializer_class = LostCodeSerializer

    @extend_schema(summary="Retrieve a lost confirmation code", responses={200: None})
    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reservation = ReservationService.retrieve_confirmation_code(serializer.get_identity())
        return envelope(
            "The confirmation code was sent to your contact details.",
            {"date": reservation.date, "start_time": reservation.start_time},
        )


class CheckInView(generics.GenericAPIView):
    """
    Check in an arriving party. Seats it, or adds it to the waiting list
    when no table is free; both are successful outcomes.
    """

    serializer_class = CheckInSerializer

    @extend_schema(summary="Check in", responses={200: None})
    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = SeatingService.check_in(serializer.validated_data["confirmation_code"])
        data = {
            "outcome": result.outcome,
            "reservation": ReservationSerializer(result.reservation).data,
            "table_number": result.table.number if result.table else None,
            "table_capacity": result.table.capacity if result.table else None,
        }
        return envelope(result.message, data)


class RequestBillView(APIView):
    """
    Bill requested by a seated party at the terminal.
    The bill is sent to the party's contact details and shown here.
    """

    @extend_schema(
        summary="Request the bill",
        request=None,
        responses={200: BillSerializer, 404: {"description": "Reservation not found or not seated"}},
    )
    def post(self, request, code):
        bill, sent = BillingService.request_bill(code)
        if sent:
            message = f"Your bill of {bill.amount} was sent to your contact details."
        else:
            message = f"Your bill comes to {bill.amount}. We could not send it to your contact details."
        return envelope(message, {**BillSerializer(bill).data, "sent": sent})


class CheckoutView(APIView):
    """
    Free a table and seat the next waiting party that fits it.
    """

    permission_classes = [permissions.IsStaffOrAbove]

    @extend_schema(summary="Check out a table", request=None, responses={200: SeatingSerializer})
    def post(self, request, table_id):
        result = SeatingService.check_out_and_assign_next(table_id)
        next_seating = result.next_seating
        return envelope(
            result.message,
            {
                "closed_seating": SeatingSerializer(result.closed_seating).data,
                "next_seating": SeatingSerializer(next_seating).data if next_seating else None,
            },
        )


class CallNextView(APIView):
    """
    Hold a free table for the next waiting party and notify it.
    """

    permission_classes = [permissions.IsStaffOrAbove]

    @extend_schema(summary="Call the next waiting party", request=None, responses={200: WaitlistEntrySerializer})
    def post(self, request, table_id):
        entry = WaitlistService.call_next(table_id)
        if entry is None:
            return envelope("Nobody on the waiting list fits this table.")
        return envelope(
            f"Reservation {entry.reservation.confirmation_code} was called to the table.",
            WaitlistEntrySerializer(entry).data,
        )


class LeaveWaitlistView(APIView):
    """
    Take a party off the waiting list; its reservation is cancelled.
    """

    @extend_schema(summary="Leave the waiting list", request=None, responses={200: WaitlistEntrySerializer})
    def post(self, request, code):
        entry = WaitlistService.cancel_waiting_list_entry(code)
        return envelope("Removed from the waiting list.", WaitlistEntrySerializer(entry).data)


class WaitlistView(generics.ListAPIView):
    """
    Current waiting list in queue order.
    """

    serializer_class = WaitlistEntrySerializer
    permission_classes = [permissions.IsStaffOrAbove]
    pagination_class = None

    def get_queryset(self):
        return WaitlistService.active_entries()

    def list(self, request, *args, **kwargs):
        serializer = self.get_serializer(self.get_queryset(), many=True)
        return envelope(f"{len(serializer.data)} part(ies) waiting.", serializer.data)


class CurrentSeatingsView(generics.ListAPIView):
    """
    Tables occupied right now.
    """

    serializer_class = SeatingSerializer
    permission_classes = [permissions.IsStaffOrAbove]
    pagination_class = None

    def get_queryset(self):
        return SeatingService.current_seatings()

    def list(self, request, *args, **kwargs):
        serializer = self.get_serializer(self.get_queryset(), many=True)
        return envelope(f"{len(serializer.data)} table(s) occupied.", serializer.data)


class ReservationListView(generics.ListAPIView):
    """
    Reservations for the host, filtered by date and status.
    """

    serializer_class = ReservationSerializer
    permission_classes = [permissions.IsStaffOrAbove]
    queryset = Reservation.objects.select_related("user")
    pagination_class = None

    filter_backends = [
        DjangoFilterBackend,
        filters.OrderingFilter,
    ]

    filterset_fields = {
        "date": ["exact", "gte", "lte"],
        "status": ["exact", "in"],
        "allocated_capacity": ["exact"],
    }

    ordering_fields = ["date", "start_time", "created_at"]
    ordering = ["date", "start_time"]

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        serializer = self.get_serializer(queryset, many=True)
        return envelope(f"{len(serializer.data)} reservation(s).", serializer.data)
