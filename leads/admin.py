from django.contrib import admin
from .models import AdminAuditLog, CallSession, Lead, LeadUpload, Worker, WorkerLeadHistory

# Inline for CallSession in Worker admin
class CallSessionInline(admin.TabularInline):
    model = CallSession
    fk_name = 'user'
    extra = 0
    readonly_fields = ('lead', 'start_time', 'outcome', 'duration_seconds')
    fields = ('lead', 'start_time', 'outcome', 'duration_seconds', 'to_number')

# Inline for Lead in LeadUpload admin
class LeadInline(admin.TabularInline):
    model = Lead
    extra = 0
    readonly_fields = ('name', 'phone', 'status', 'attempt_count')
    fields = ('name', 'phone', 'status', 'attempt_count', 'created_at')

# Admin for Worker
@admin.register(Worker)
class WorkerAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'role', 'status', 'created_at')
    list_filter = ('role', 'status', 'created_at')
    search_fields = ('user__username', 'user__first_name', 'user__last_name')
    inlines = [CallSessionInline]

# Admin for CallSession
@admin.register(CallSession)
class CallSessionAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'lead', 'to_number', 'outcome', 'start_time', 'duration_seconds', 'followup_at')
    list_filter = ('outcome', 'followup_priority', 'appointment_created', 'start_time')
    search_fields = ('to_number', 'notes')
    readonly_fields = ('start_time', 'duration_seconds', 'created_at')
    date_hierarchy = 'start_time'

# Admin for LeadUpload
@admin.register(LeadUpload)
class LeadUploadAdmin(admin.ModelAdmin):
    list_display = ('id', 'filename', 'uploaded_by', 'imported_count', 'duplicate_count', 'invalid_count', 'created_at')
    search_fields = ('filename',)
    inlines = [LeadInline]

# Admin for Lead
@admin.register(Lead)
class LeadAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'phone', 'category', 'status', 'assigned_to', 'locked_until', 'attempt_count', 'created_at')
    list_filter = ('status', 'category', 'created_at')
    search_fields = ('name', 'phone', 'email')
    readonly_fields = ('id', 'created_at', 'updated_at')
    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'name', 'phone', 'email', 'website', 'category')
        }),
        ('Queue & Status', {
            'fields': ('status', 'assigned_to', 'assigned_at', 'locked_until', 'attempt_count', 'max_attempts')
        }),
        ('Metadata', {
            'fields': ('upload', 'created_at', 'updated_at', 'deleted_at')
        }),
    )

@admin.register(WorkerLeadHistory)
class WorkerLeadHistoryAdmin(admin.ModelAdmin):
    list_display = ('id', 'worker', 'lead', 'created_at')
    search_fields = ('lead__phone', 'worker__user__username')

@admin.register(AdminAuditLog)
class AdminAuditLogAdmin(admin.ModelAdmin):
    list_display = ('id', 'admin', 'action', 'entity_type', 'entity_id', 'created_at')
    list_filter = ('action', 'entity_type')
    readonly_fields = ('admin', 'action', 'entity_type', 'entity_id', 'details', 'created_at')
