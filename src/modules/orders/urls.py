"""Order URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from modules.orders.views import CartItemView, CartView, CheckoutView, OrderViewSet

router = DefaultRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")

urlpatterns = [
    path("cart/", CartView.as_view(), name="cart"),
    path("cart/items/<str:product_id>/", CartItemView.as_view(), name="cart-item"),
    path("cart/checkout/", CheckoutView.as_view(), name="cart-checkout"),
    *router.urls,
]
