import django_filters

from taskboard.tasks.models import Task


class TaskFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=Task.Status.choices)
    priority = django_filters.ChoiceFilter(choices=Task.Priority.choices)
    assigned_to = django_filters.NumberFilter(field_name="assigned_to__id")
    mine = django_filters.BooleanFilter(method="filter_mine")

    class Meta:
        model = Task
        fields = ["status", "priority", "assigned_to", "mine"]

    def filter_mine(self, queryset, name, value):
        # ?mine=true narrows the shared board to cards assigned to request.user
        if not value:
            return queryset
        return queryset.filter(assigned_to=self.request.user)
