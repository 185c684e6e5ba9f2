from django.urls import path

from . import views

app_name = "payment"

urlpatterns = [
    path("esewa/initiate/", views.initiate_payment, name="initiate_payment"),
    path("esewa/success/", views.esewa_success, name="esewa_success"),
    path("esewa/failure/", views.esewa_failure, name="esewa_failure"),
    path("esewa/status/<str:transaction_uuid>/", views.payment_status, name="payment_status"),
]
