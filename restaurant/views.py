from datetime import date

from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status
from rest_framework.permissions import AllowAny
from rest_framework.viewsets import GenericViewSet
from django_filters.rest_framework import DjangoFilterBackend

from config.permissions import IsManagerOrAdmin, IsStaffOrAbove
from config.responses import envelope
from reservation.exceptions import NotFound
from reservation.serializers import ReservationSerializer
from reservation.services.management import ManagementService
from .models import OpeningHours, Table
from .serializers import (
    OpeningHoursSerializer,
    OpeningHoursUpdateSerializer,
    TableCapacitySerializer,
    TableSerializer,
)


class TableViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, GenericViewSet):
    """
    Table inventory. Staff can look, managers can change it.
    Tables are never deleted; DELETE deactivates the table.
    """

    queryset = Table.objects.all()
    serializer_class = TableSerializer
    lookup_field = 'number'
    pagination_class = None
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['is_active', 'capacity']

    def get_permissions(self):
        if self.action in ('list', 'retrieve'):
            return [IsStaffOrAbove()]
        return [IsManagerOrAdmin()]

    def get_serializer_class(self):
        if self.action == 'partial_update':
            return TableCapacitySerializer
        return TableSerializer

    def list(self, request, *args, **kwargs):
        serializer = self.get_serializer(self.filter_queryset(self.get_queryset()), many=True)
        return envelope(f"{len(serializer.data)} table(s).", serializer.data)

    def retrieve(self, request, *args, **kwargs):
        return envelope("Table found.", self.get_serializer(self.get_object()).data)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        table = ManagementService.add_table(**serializer.validated_data)
        return envelope(f"Table {table.number} added.", TableSerializer(table).data, status.HTTP_201_CREATED)

    @extend_schema(summary="Change table capacity", request=TableCapacitySerializer)
    def partial_update(self, request, number=None):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        table, cancelled = ManagementService.change_table_capacity(
            int(number), serializer.validated_data['capacity']
        )
        return envelope(
            f"Table {table.number} now seats {table.capacity}. {len(cancelled)} reservation(s) cancelled.",
            {
                'table': TableSerializer(table).data,
                'cancelled': ReservationSerializer(cancelled, many=True).data,
            },
        )

    @extend_schema(summary="Deactivate a table")
    def destroy(self, request, number=None):
        table, cancelled = ManagementService.deactivate_table(int(number))
        return envelope(
            f"Table {table.number} deactivated. {len(cancelled)} reservation(s) cancelled.",
            {
                'table': TableSerializer(table).data,
                'cancelled': ReservationSerializer(cancelled, many=True).data,
            },
        )


class OpeningHoursViewSet(mixins.ListModelMixin, GenericViewSet):
    """
    Opening hours calendar. Anyone can read it, managers can change a day.
    """

    queryset = OpeningHours.objects.all()
    serializer_class = OpeningHoursSerializer
    lookup_field = 'date'
    lookup_value_regex = r'\d{4}-\d{2}-\d{2}'
    pagination_class = None
    filter_backends = [DjangoFilterBackend]
    filterset_fields = {
        'date': ['exact', 'gte', 'lte'],
        'occasion': ['exact'],
    }

    def get_permissions(self):
        if self.action == 'list':
            return [AllowAny()]
        return [IsManagerOrAdmin()]

    def get_serializer_class(self):
        if self.action == 'update':
            return OpeningHoursUpdateSerializer
        return OpeningHoursSerializer

    def list(self, request, *args, **kwargs):
        serializer = self.get_serializer(self.filter_queryset(self.get_queryset()), many=True)
        return envelope(f"{len(serializer.data)} day(s).", serializer.data)

    @extend_schema(
        summary="Set the opening hours of a day",
        description="Reservations falling outside the new hours are cancelled "
        "and their customers notified. Leave both times empty to close the day.",
    )
    def update(self, request, date=None):
        try:
            day = _parse_date(date)
        except ValueError:
            raise NotFound(f"Invalid date {date}.")

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        hours, cancelled = ManagementService.update_opening_hours(
            day,
            data.get('open_time'),
            data.get('close_time'),
            data.get('occasion', OpeningHours.Occasion.REGULAR),
        )
        return envelope(
            f"Opening hours of {hours.date} updated. {len(cancelled)} reservation(s) cancelled.",
            {
                'hours': OpeningHoursSerializer(hours).data,
                'cancelled': ReservationSerializer(cancelled, many=True).data,
            },
        )


def _parse_date(value):
    return date.fromisoformat(value)
