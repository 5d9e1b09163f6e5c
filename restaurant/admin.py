# restaurant/admin.py

from django.contrib import admin

from reservation.services.management import ManagementService
from .models import OpeningHours, Table


@admin.register(Table)
class TableAdmin(admin.ModelAdmin):
    """
    Admin configuration for Table model.
    Capacity changes and deactivation go through the management service
    so that reservations that no longer fit are cancelled.
    """
    list_display = ('number', 'capacity', 'is_active')
    list_filter = ('is_active', 'capacity')
    search_fields = ('number',)
    ordering = ('number',)
    readonly_fields = ('is_active',)

    actions = ['deactivate_tables']

    def save_model(self, request, obj, form, change):
        if not change or 'capacity' not in form.changed_data:
            super().save_model(request, obj, form, change)
            return

        new_capacity = obj.capacity
        obj.capacity = form.initial['capacity']
        super().save_model(request, obj, form, change)
        _, cancelled = ManagementService.change_table_capacity(obj.number, new_capacity)
        self.message_user(request, f'{len(cancelled)} reservation(s) cancelled.')

    @admin.action(description='Deactivate selected tables')
    def deactivate_tables(self, request, queryset):
        cancelled = 0
        for table in queryset.filter(is_active=True):
            _, victims = ManagementService.deactivate_table(table.number)
            cancelled += len(victims)
        self.message_user(request, f'Tables deactivated, {cancelled} reservation(s) cancelled.')


@admin.register(OpeningHours)
class OpeningHoursAdmin(admin.ModelAdmin):
    list_display = ('date', 'day_name', 'open_time', 'close_time', 'occasion')
    list_filter = ('occasion',)
    ordering = ('date',)
    date_hierarchy = 'date'

    def save_model(self, request, obj, form, change):
        _, cancelled = ManagementService.update_opening_hours(
            obj.date, obj.open_time, obj.close_time, obj.occasion
        )
        if cancelled:
            self.message_user(request, f'{len(cancelled)} reservation(s) cancelled.')
