from django.urls import path

from apps.enrollment.views import EnrollmentCreateView, EnrollmentVerifyView, PaymentMethodListView, PaymentOrderCreateView

urlpatterns = [
    path("enrollment/payment-methods/", PaymentMethodListView.as_view(), name="enrollment-payment-methods"),
    path("enrollment/create/", EnrollmentCreateView.as_view(), name="enrollment-create"),
    path("payment/create-order/", PaymentOrderCreateView.as_view(), name="payment-create-order"),
    path("payment/verify-enrollment/", EnrollmentVerifyView.as_view(), name="payment-verify-enrollment"),
]
