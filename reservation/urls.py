from django.urls import path, include

from reservation import views


urlpatterns = [
    path(
        "availability/",
        views.AvailabilityView.as_view(),
        name="availability",
    ),
    path(
        "",
        views.ConfirmReservationView.as_view(),
        name="confirm-reservation",
    ),
    path("list/", views.ReservationListView.as_view(), name="reservation-list"),
    path("lost-code/", views.LostCodeView.as_view(), name="lost-code"),
    path("check-in/", views.CheckInView.as_view(), name="check-in"),
    path("waitlist/", views.WaitlistView.as_view(), name="waitlist"),
    path("seatings/", views.CurrentSeatingsView.as_view(), name="current-seatings"),
    path(
        "tables/<int:table_id>/",
        include(
            [
                path("checkout/", views.CheckoutView.as_view(), name="checkout"),
                path("call-next/", views.CallNextView.as_view(), name="call-next"),
            ]
        ),
    ),
    path(
        "<str:code>/",
        include(
            [
                path(
                    "",
                    views.ReservationDetailView.as_view(),
                    name="reservation-detail",
                ),
                path(
                    "cancel/",
                    views.CancelReservationView.as_view(),
                    name="cancel-reservation",
                ),
                path(
                    "leave-waitlist/",
                    views.LeaveWaitlistView.as_view(),
                    name="leave-waitlist",
                ),
                path("bill/", views.RequestBillView.as_view(), name="request-bill"),
            ]
        ),
    ),
]
