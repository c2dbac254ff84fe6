from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, permissions, viewsets
from rest_framework.decorators import action
from rest_framework.views import APIView

from accounts.permissions import IsPlatformAdmin
from bookings.serializers import BookingSummarySerializer
from core.responses import EnvelopePagination, success
from payments.filters import BankTransactionFilter
from payments.models import BankTransaction
from payments.serializers import (
    BankTransactionSerializer,
    DateRangeSerializer,
    MatchTransactionSerializer,
    TransactionNotesSerializer,
)
from payments.services.reconciliation import (
    ignore_transaction,
    mark_transaction_refunded,
    match_transaction,
    payment_statistics,
    suggest_bookings,
    transaction_statistics,
)
from payments.services.reminders import due_reminders, send_payment_reminders


class BankTransactionViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """Admin reconciliation queue for bank credits that were not matched automatically."""

    serializer_class = BankTransactionSerializer
    permission_classes = [permissions.IsAuthenticated, IsPlatformAdmin]
    pagination_class = EnvelopePagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = BankTransactionFilter

    def get_queryset(self):
        return BankTransaction.objects.select_related("matched_booking", "matched_by")

    def filter_queryset(self, queryset):
        if self.action != "list":
            return queryset
        return super().filter_queryset(queryset)

    def retrieve(self, request, pk=None):
        bank_txn = self.get_object()
        now = timezone.now()
        data = BankTransactionSerializer(bank_txn, context={"now": now}).data
        suggestions = suggest_bookings(bank_txn, now=now) if bank_txn.status == BankTransaction.UNMATCHED else []
        data["suggested_bookings"] = BookingSummarySerializer(suggestions, many=True, context={"now": now}).data
        return success(data)

    @action(detail=True, methods=["post"])
    def match(self, request, pk=None):
        bank_txn = self.get_object()
        serializer = MatchTransactionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        matched = match_transaction(
            bank_txn.pk,
            serializer.validated_data["booking_id"],
            notes=serializer.validated_data["notes"],
            actor=request.user,
        )
        return success(BankTransactionSerializer(matched).data)

    @action(detail=True, methods=["post"])
    def ignore(self, request, pk=None):
        bank_txn = self.get_object()
        serializer = TransactionNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ignored = ignore_transaction(bank_txn.pk, notes=serializer.validated_data["notes"], actor=request.user)
        return success(BankTransactionSerializer(ignored).data)

    @action(detail=True, methods=["post"])
    def refund(self, request, pk=None):
        bank_txn = self.get_object()
        serializer = TransactionNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refunded = mark_transaction_refunded(
            bank_txn.pk,
            notes=serializer.validated_data["notes"],
            actor=request.user,
        )
        return success(BankTransactionSerializer(refunded).data)

    @action(detail=False, methods=["get"])
    def statistics(self, request):
        return success(transaction_statistics())


class PaymentStatisticsView(APIView):
    """Revenue, host payouts and platform commission over paid bookings."""

    permission_classes = [permissions.IsAuthenticated, IsPlatformAdmin]

    def get(self, request, *args, **kwargs):
        serializer = DateRangeSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        date_from = serializer.validated_data.get("date_from")
        date_to = serializer.validated_data.get("date_to")
        stats = payment_statistics(date_from, date_to)
        return success(
            stats,
            date_from=date_from.isoformat() if date_from else None,
            date_to=date_to.isoformat() if date_to else None,
        )


class PaymentReminderView(APIView):
    """GET counts the reminders that are due; POST sends them."""

    permission_classes = [permissions.IsAuthenticated, IsPlatformAdmin]

    def get(self, request, *args, **kwargs):
        return success({"due": len(due_reminders())})

    def post(self, request, *args, **kwargs):
        return success(send_payment_reminders())
