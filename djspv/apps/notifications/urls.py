from django.urls import path

from .views import NotificationMarkAllReadView, NotificationMarkOneReadView, NotificationsMyView

urlpatterns = [
    path("notifications/my", NotificationsMyView.as_view(), name="notifications-my"),
    path("notifications/my/", NotificationsMyView.as_view(), name="notifications-my-slash"),
    path("notifications/read-all", NotificationMarkAllReadView.as_view(), name="notifications-read-all"),
    path("notifications/read-all/", NotificationMarkAllReadView.as_view(), name="notifications-read-all-slash"),
    path("notifications/<uuid:pk>/read", NotificationMarkOneReadView.as_view(), name="notifications-read-one"),
    path("notifications/<uuid:pk>/read/", NotificationMarkOneReadView.as_view(), name="notifications-read-one-slash"),
]
