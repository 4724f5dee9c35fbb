from django.contrib import admin
from .models import Appointment

@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'lead_name', 'lead_phone', 'scheduled_at', 'status', 'outcome', 'created_by_name', 'deleted_at')
    list_filter = ('status', 'outcome', 'scheduled_at')
    search_fields = ('lead_name', 'lead_phone', 'created_by_name')
    readonly_fields = ('created_at', 'updated_at')
    date_hierarchy = 'scheduled_at'
