from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import (
    Activity,
    BankAccount,
    Client,
    Letterhead,
    PaymentEntry,
    PaymentSettings,
    QRCode,
    Task,
    TaskAdvance,
    TaskBilling,
    TaskNote,
    TaskStatusHistory,
    User,
)


class ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = DjangoUserAdmin.fieldsets + (('Role Info', {'fields': ('role', 'phone')}),)
    add_fieldsets = DjangoUserAdmin.add_fieldsets + (('Role Info', {'fields': ('email', 'role')}),)
    list_display = ('username', 'email', 'first_name', 'last_name', 'role', 'is_active')
    list_filter = ('role', 'is_active')


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'mobile', 'email', 'owner', 'is_active')
    list_filter = ('is_active', 'client_type')
    search_fields = ('name', 'code', 'mobile', 'email', 'pan', 'gstin')


class TaskNoteInline(admin.TabularInline):
    model = TaskNote
    extra = 0


class TaskStatusHistoryInline(ReadOnlyInline):
    model = TaskStatusHistory
    fields = ('status', 'changed_at', 'changed_by', 'note')
    readonly_fields = fields


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ('title', 'client', 'owner', 'status', 'priority', 'due_date', 'assigned_to', 'is_archived')
    list_filter = ('status', 'priority', 'is_archived', 'auto_archived')
    search_fields = ('title', 'client__name', 'client__code', 'legacy_assigned_name')
    inlines = [TaskNoteInline, TaskStatusHistoryInline]


class TaskAdvanceInline(admin.StackedInline):
    model = TaskAdvance
    extra = 0


class PaymentEntryInline(ReadOnlyInline):
    model = PaymentEntry
    fields = ('amount', 'payment_mode', 'transaction_id', 'paid_at', 'recorded_by')
    readonly_fields = fields


@admin.register(TaskBilling)
class TaskBillingAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'task', 'amount', 'tax_amount', 'discount', 'paid_amount', 'payment_status', 'due_date')
    list_filter = ('payment_status', 'payment_mode')
    search_fields = ('invoice_number', 'task__title', 'task__client__name')
    inlines = [TaskAdvanceInline, PaymentEntryInline]


class QRCodeInline(admin.TabularInline):
    model = QRCode
    extra = 0


class BankAccountInline(admin.TabularInline):
    model = BankAccount
    extra = 0


class LetterheadInline(admin.StackedInline):
    model = Letterhead
    extra = 0


@admin.register(PaymentSettings)
class PaymentSettingsAdmin(admin.ModelAdmin):
    list_display = ('admin', 'default_currency', 'invoice_prefix', 'next_invoice_number', 'tax_enabled')
    inlines = [QRCodeInline, BankAccountInline, LetterheadInline]


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'user', 'type', 'action', 'priority', 'expires_at')
    list_filter = ('type', 'priority')
    search_fields = ('action', 'description')

    def has_change_permission(self, request, obj=None):
        return False
