from django.urls import path
from .views import profile


urlpatterns = [
    path("me", profile, name="users-me"),
    path("me/", profile, name="users-me-slash"),
]
