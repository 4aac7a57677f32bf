"""Real-time URL configuration."""

from django.urls import path

from modules.realtime.views import OrderEventStreamView

urlpatterns = [
    path("stream/", OrderEventStreamView.as_view(), name="order-event-stream"),
]
