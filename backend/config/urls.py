from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from accounts.api import LoginView, MeView
from bookings.api import BookingViewSet
from payments.api import BankTransactionViewSet, PaymentReminderView, PaymentStatisticsView

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")
router.register(r"admin/transactions", BankTransactionViewSet, basename="admin-transaction")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/login/", LoginView.as_view(), name="auth-login"),
    path("api/auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("api/auth/me/", MeView.as_view(), name="auth-me"),
    path(
        "api/admin/payments/statistics/",
        PaymentStatisticsView.as_view(),
        name="admin-payment-statistics",
    ),
    path(
        "api/admin/payment-reminders/",
        PaymentReminderView.as_view(),
        name="admin-payment-reminders",
    ),
    path("api/", include(router.urls)),
]
