"""Task CRUD for the board.

Every response uses the envelope the board client expects:
``{"success": true, "data": ...}`` or ``{"success": false, "message": ...}``.
"""

from __future__ import annotations

from typing import Any

from django.db import transaction
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import extend_schema_view
from rest_framework import status
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.filters import SearchFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import exception_handler

from taskboard.tasks import services
from taskboard.tasks.api.filters import TaskFilter
from taskboard.tasks.api.serializers import TaskSerializer
from taskboard.tasks.api.serializers import TaskStatusSerializer
from taskboard.tasks.models import Task


def _first_message(detail: Any) -> str:
    if isinstance(detail, dict):
        if "detail" in detail:
            return str(detail["detail"])
        for field, value in detail.items():
            return f"{field}: {_first_message(value)}"
    if isinstance(detail, list) and detail:
        return _first_message(detail[0])
    return str(detail)


def envelope_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return None
    response.data = {
        "success": False,
        "message": _first_message(response.data),
        "errors": response.data,
    }
    return response


@extend_schema_view(
    list=extend_schema(tags=["Tasks"]),
    retrieve=extend_schema(tags=["Tasks"]),
    create=extend_schema(tags=["Tasks"]),
    update=extend_schema(tags=["Tasks"]),
    partial_update=extend_schema(tags=["Tasks"]),
    destroy=extend_schema(tags=["Tasks"]),
    set_status=extend_schema(tags=["Tasks"], request=TaskStatusSerializer),
)
class TaskViewSet(viewsets.ModelViewSet):
    """The shared board: every authenticated user sees every task.

    Only the creator (or staff) may delete a task.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = TaskSerializer
    pagination_class = None
    queryset = Task.objects.select_related("created_by", "assigned_to")
    filter_backends = [DjangoFilterBackend, SearchFilter]
    filterset_class = TaskFilter
    search_fields = ["title", "description"]

    def get_exception_handler(self):
        return envelope_exception_handler

    def finalize_response(self, request, response, *args, **kwargs):
        if (
            isinstance(response, Response)
            and not response.exception
            and status.is_success(response.status_code)
        ):
            response.data = {"success": True, "data": response.data}
        return super().finalize_response(request, response, *args, **kwargs)

    def perform_create(self, serializer):
        with transaction.atomic():
            task = serializer.save(created_by=self.request.user)
            services.notify_assignment(task, self.request.user)

    def perform_update(self, serializer):
        old_status = serializer.instance.status
        old_assignee_id = serializer.instance.assigned_to_id
        with transaction.atomic():
            task = serializer.save()
            if task.assigned_to_id != old_assignee_id:
                services.notify_assignment(task, self.request.user)
            services.notify_status_change(task, old_status, self.request.user)

    def destroy(self, request, *args, **kwargs):
        task = self.get_object()
        if task.created_by_id != request.user.pk and not request.user.is_staff:
            msg = "Only the task creator can delete it."
            raise PermissionDenied(msg)
        task_id = task.pk
        task.delete()
        return Response({"id": task_id}, status=status.HTTP_200_OK)

    @action(detail=True, methods=["patch"], url_path="status")
    def set_status(self, request, pk=None):
        task = self.get_object()
        serializer = TaskStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        old_status = task.status
        with transaction.atomic():
            task.status = serializer.validated_data["status"]
            task.save(update_fields=["status", "updated_at"])
            services.notify_status_change(task, old_status, request.user)
        return Response(TaskSerializer(task, context={"request": request}).data)
