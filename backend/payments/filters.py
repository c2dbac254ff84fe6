import django_filters

from payments.models import BankTransaction
from payments.services.reconciliation import transaction_queryset

ALL_STATUSES = "all"


class BankTransactionFilter(django_filters.FilterSet):
    """Query parameters of the reconciliation queue. Status defaults to ``unmatched``."""

    status = django_filters.ChoiceFilter(
        choices=BankTransaction.STATUSES + [(ALL_STATUSES, "All")],
        method="filter_noop",
    )
    date_from = django_filters.DateFilter(method="filter_noop")
    date_to = django_filters.DateFilter(method="filter_noop")
    search = django_filters.CharFilter(method="filter_noop")
    min_amount = django_filters.NumberFilter(method="filter_noop", min_value=0)
    max_amount = django_filters.NumberFilter(method="filter_noop", min_value=0)

    class Meta:
        model = BankTransaction
        fields = ["status", "date_from", "date_to", "search", "min_amount", "max_amount"]

    def filter_noop(self, queryset, name, value):
        return queryset

    def filter_queryset(self, queryset):
        data = self.form.cleaned_data
        status = data.get("status") or BankTransaction.UNMATCHED
        min_amount = data.get("min_amount")
        max_amount = data.get("max_amount")
        return transaction_queryset(
            queryset=queryset,
            status=None if status == ALL_STATUSES else status,
            date_from=data.get("date_from"),
            date_to=data.get("date_to"),
            search=data.get("search") or "",
            min_amount=int(min_amount) if min_amount is not None else None,
            max_amount=int(max_amount) if max_amount is not None else None,
        )
