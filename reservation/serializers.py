from rest_framework import serializers

from reservation.identity import identity_from
from reservation.models import Bill, Reservation, Seating, WaitlistEntry


class IdentityFieldsMixin(serializers.Serializer):
    """
    A booking is made either by a subscriber (user_id) or by a guest with
    an e-mail address or phone number. Exactly one must be given.
    """

    user_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    guest_contact = serializers.CharField(
        required=False, allow_blank=True, max_length=254, help_text="E-mail or phone number"
    )

    def get_identity(self):
        return identity_from(
            user_id=self.validated_data.get("user_id"),
            guest_contact=self.validated_data.get("guest_contact"),
        )


class AvailabilityQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
    party_size = serializers.IntegerField(min_value=1)


class AvailabilityResultSerializer(serializers.Serializer):
    """
    Serializer for availability search results.
    Suggestions are listed in date order.
    """

    outcome = serializers.CharField()
    message = serializers.CharField()
    date = serializers.DateField()
    party_size = serializers.IntegerField()
    allocated_capacity = serializers.IntegerField()
    slots = serializers.ListField(child=serializers.TimeField(format="%H:%M"))
    suggestions = serializers.SerializerMethodField()

    def get_suggestions(self, obj):
        return [
            {"date": day.isoformat(), "times": [start.strftime("%H:%M") for start in times]}
            for day, times in sorted(obj.suggestions.items())
        ]


class ConfirmSlotSerializer(IdentityFieldsMixin):
    date = serializers.DateField()
    start_time = serializers.TimeField()
    party_size = serializers.IntegerField(min_value=1)


class EditReservationSerializer(IdentityFieldsMixin):
    date = serializers.DateField()
    start_time = serializers.TimeField()
    party_size = serializers.IntegerField(min_value=1)

    def get_identity(self):
        # Keeping the current identity unless a new one is given
        if not self.validated_data.get("user_id") and not self.validated_data.get("guest_contact", "").strip():
            return None
        return super().get_identity()


class CancelReservationSerializer(serializers.Serializer):
    """
    Serializer for cancellation request.
    """

    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        max_length=500,
        help_text="Optional reason for cancellation",
    )


class LostCodeSerializer(IdentityFieldsMixin):
    pass


class CheckInSerializer(serializers.Serializer):
    confirmation_code = serializers.CharField(max_length=6)


class ReservationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Reservation
        fields = [
            "id",
            "confirmation_code",
            "date",
            "start_time",
            "end_time",
            "party_size",
            "allocated_capacity",
            "status",
            "user",
            "guest_contact",
            "cancellation_reason",
            "created_at",
        ]
        read_only_fields = fields


class SeatingSerializer(serializers.ModelSerializer):
    table_number = serializers.IntegerField(source="table.number", read_only=True)
    table_capacity = serializers.IntegerField(source="table.capacity", read_only=True)
    confirmation_code = serializers.CharField(source="reservation.confirmation_code", read_only=True)
    party_size = serializers.IntegerField(source="reservation.party_size", read_only=True)

    class Meta:
        model = Seating
        fields = [
            "id",
            "table",
            "table_number",
            "table_capacity",
            "confirmation_code",
            "party_size",
            "check_in_time",
            "check_out_time",
            "bill_sent",
        ]
        read_only_fields = fields


class WaitlistEntrySerializer(serializers.ModelSerializer):
    confirmation_code = serializers.CharField(source="reservation.confirmation_code", read_only=True)
    party_size = serializers.IntegerField(source="reservation.party_size", read_only=True)
    allocated_capacity = serializers.IntegerField(
        source="reservation.allocated_capacity", read_only=True
    )

    class Meta:
        model = WaitlistEntry
        fields = [
            "id",
            "confirmation_code",
            "party_size",
            "allocated_capacity",
            "status",
            "priority",
            "created_at",
            "assigned_at",
        ]
        read_only_fields = fields



class BillSerializer(serializers.ModelSerializer):
    table_number = serializers.IntegerField(source="seating.table.number", read_only=True)
    party_size = serializers.IntegerField(source="seating.reservation.party_size", read_only=True)

    class Meta:
        model = Bill
        fields = ["id", "table_number", "party_size", "amount", "created_at", "sent_at"]
        read_only_fields = fields
