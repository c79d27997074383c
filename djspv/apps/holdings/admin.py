from django.contrib import admin

from .models import BankAccount, CapTableEntry, Project, SPV


class CapTableEntryInline(admin.TabularInline):
    model = CapTableEntry
    extra = 0
    raw_id_fields = ("shareholder",)


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ("name", "asset_manager", "created_at")
    search_fields = ("name",)
    raw_id_fields = ("asset_manager",)


@admin.register(SPV)
class SPVAdmin(admin.ModelAdmin):
    list_display = ("name", "project", "created_at")
    search_fields = ("name", "project__name")
    inlines = [CapTableEntryInline]


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ("account_holder_name", "user", "ifsc_code", "bank_name", "is_active")
    list_filter = ("is_active",)
    search_fields = ("account_holder_name", "ifsc_code", "user__email")
    raw_id_fields = ("user",)
