# reservation/admin.py

from django.contrib import admin
from django.utils.html import format_html

from .models import Bill, Reservation, Seating, WaitlistEntry


def badge_column(colors):
    """
    Build a list column showing the status as a colored badge.
    """
    def badge(self, obj):
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 8px; '
            'border-radius: 3px; font-size: 11px;">{}</span>',
            colors.get(obj.status, '#777'),
            obj.get_status_display()
        )
    badge.short_description = 'Status'
    return badge


@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    """
    Admin configuration for Reservation model.
    Status changes are made through the API so that cascades run.
    """
    list_display = (
        'confirmation_code',
        'date',
        'start_time',
        'party_size',
        'allocated_capacity',
        'customer',
        'status_badge',
        'created_at'
    )
    list_filter = ('status', 'date', 'allocated_capacity')
    search_fields = ('confirmation_code', 'guest_contact', 'user__username', 'user__email')
    ordering = ('-date', '-start_time')
    date_hierarchy = 'date'
    list_select_related = ('user',)
    raw_id_fields = ('user',)
    readonly_fields = ('confirmation_code', 'end_time', 'status', 'reminder_sent_at', 'created_at', 'updated_at')

    fieldsets = (
        ('Tracking', {
            'fields': ('confirmation_code', 'status')
        }),
        ('Reservation Details', {
            'fields': ('date', 'start_time', 'end_time', 'party_size', 'allocated_capacity')
        }),
        ('Customer', {
            'fields': ('user', 'guest_contact')
        }),
        ('Cancellation', {
            'fields': ('cancellation_reason',),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('reminder_sent_at', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    status_badge = badge_column({
        'NEW': '#f0ad4e',
        'CONFIRMED': '#5cb85c',
        'WAITING': '#5bc0de',
        'CALLED': '#BA68C8',
        'SEATED': '#337ab7',
        'COMPLETED': '#777777',
        'CANCELLED': '#d9534f',
        'NO_SHOW': '#8a6d3b',
    })

    @admin.display(description='Customer')
    def customer(self, obj):
        return obj.user or obj.guest_contact


@admin.register(Seating)
class SeatingAdmin(admin.ModelAdmin):
    list_display = ('id', 'table', 'reservation', 'check_in_time', 'check_out_time', 'bill_sent')
    list_filter = ('bill_sent', 'table')
    ordering = ('-check_in_time',)
    list_select_related = ('table', 'reservation')
    raw_id_fields = ('table', 'reservation')
    readonly_fields = ('check_in_time', 'check_out_time', 'bill_sent', 'bill_claimed_at')


@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    """
    Admin configuration for WaitlistEntry model.
    """
    list_display = ('id', 'reservation', 'priority', 'status_badge', 'created_at', 'assigned_at')
    list_filter = ('status', 'priority')
    search_fields = ('reservation__confirmation_code', 'reservation__guest_contact')
    ordering = ('-priority', 'created_at')
    list_select_related = ('reservation',)
    raw_id_fields = ('reservation',)
    readonly_fields = ('created_at', 'assigned_at', 'updated_at')

    status_badge = badge_column({
        'WAITING': '#5bc0de',
        'CALLED': '#f0ad4e',
        'ASSIGNED': '#5cb85c',
        'CANCELLED': '#777777',
    })


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ('id', 'seating', 'amount', 'created_at', 'sent_at')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    raw_id_fields = ('seating',)
    readonly_fields = ('created_at', 'sent_at')
