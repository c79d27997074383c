from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = DjangoUserAdmin.fieldsets + (
        ("Platform", {"fields": ("role", "status", "full_name", "phone_number")}),
    )
    list_display = ("username", "email", "role", "status", "is_active")
    list_filter = ("role", "status", "is_active")
    search_fields = ("username", "email", "full_name")
