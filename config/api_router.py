from django.conf import settings
from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from taskboard.notifications.api.views import NotificationViewSet
from taskboard.tasks.api.views import TaskViewSet
from taskboard.users.api.views import CurrentUserView

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("tasks", TaskViewSet, basename="tasks")
router.register("notifications", NotificationViewSet, basename="notifications")


app_name = "api"
urlpatterns = [
    path("auth/me/", CurrentUserView.as_view(), name="auth-me"),
    *router.urls,
]
