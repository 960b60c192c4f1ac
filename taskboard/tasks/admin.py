from django.contrib import admin

from taskboard.tasks import models


@admin.register(models.Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ["id", "title", "status", "priority", "assigned_to", "due_date"]
    search_fields = ["title", "description"]
    list_filter = ["status", "priority", "created_at"]
