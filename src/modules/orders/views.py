"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

from typing import Any

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.core.permissions import IsStaffRole, resolve_actor_role
from modules.orders.cart import SessionCart
from modules.orders.dtos import CreateOrderDTO, OrderLineDTO
from modules.orders.exceptions import (
    InvalidOrderData,
    InvalidTransition,
    ItemsLocked,
    OrderError,
    OrderNotFound,
    StoreUnavailable,
    TransitionNotPermitted,
)
from modules.orders.filters import OrderFilter
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CartItemSerializer,
    CartQuantitySerializer,
    CartSerializer,
    CreateOrderSerializer,
    CustomerDetailsSerializer,
    ItemsUpdateSerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderTrackingSerializer,
    PaymentUpdateSerializer,
    StatusUpdateSerializer,
)
from modules.orders.services import OrderService

# Most specific first.
_ERROR_STATUS = (
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
    (TransitionNotPermitted, status.HTTP_403_FORBIDDEN),
    (ItemsLocked, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (InvalidOrderData, status.HTTP_400_BAD_REQUEST),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def error_response(exc: OrderError) -> Response:
    for exc_class, http_status in _ERROR_STATUS:
        if isinstance(exc, exc_class):
            return Response({"detail": str(exc)}, status=http_status)
    raise exc


def _order_lines(items: list[dict[str, Any]]) -> list[OrderLineDTO]:
    return [OrderLineDTO(**item) for item in items]


def _build_service() -> OrderService:
    return OrderService(order_repository=OrderDjangoRepository())


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with the injected repository (DIP).
    Does **not** extend ``ModelViewSet``: every mutation goes through
    the service so locking, history and events are never bypassed.
    """

    filterset_class = OrderFilter
    ordering_fields = ["created_at", "total", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = _build_service()

    def get_queryset(self):
        return OrderDjangoRepository().queryset()

    def get_permissions(self):
        if self.action in {"create", "track", "change_status"}:
            return [AllowAny()]
        return [IsStaffRole()]

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action == "track":
            throttle_scope = "order_tracking"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Anonymous checkout or manual entry by staff.
        """
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        dto = CreateOrderDTO(items=_order_lines(data.pop("items")), **data)

        try:
            order = self._service.create_order(dto)
        except OrderError as exc:
            return error_response(exc)

        order = self._service.get_order(order.id)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, payment status, delivery method, date and
        total range) is handled by ``OrderFilter``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = OrderListSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        return Response(OrderListSerializer(queryset, many=True).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(pk)
        except OrderError as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)

    @action(
        detail=False,
        methods=["get"],
        url_path=r"track/(?P<order_number>[A-Za-z0-9-]+)",
    )
    def track(self, request: Request, order_number: str | None = None) -> Response:
        """GET /api/v1/orders/track/{order_number}/

        Public: the order number is the customer's receipt.
        """
        try:
            order = self._service.get_by_order_number(order_number)
        except OrderError as exc:
            return error_response(exc)
        return Response(OrderTrackingSerializer(order).data)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/status/

        Staff move orders along the state machine; customers may cancel
        their own pending order by sending its ``order_number``.
        """
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        role = resolve_actor_role(request.user)

        try:
            order = self._service.transition_status(
                order_id=pk,
                target_status=data["status"],
                actor_role=role,
                customer_reference=data["order_number"] or None,
                notes=data["notes"],
            )
        except OrderError as exc:
            return error_response(exc)

        order = self._service.get_order(order.id)
        if role == "customer":
            return Response(OrderTrackingSerializer(order).data)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="payment")
    def payment(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/payment/"""
        serializer = PaymentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.update_payment_status(
                pk, serializer.validated_data["payment_status"]
            )
        except OrderError as exc:
            return error_response(exc)

        order = self._service.get_order(order.id)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["put"], url_path="items")
    def items(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/items/

        Replaces every line item of a pending order.
        """
        serializer = ItemsUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.update_items(
                pk, _order_lines(serializer.validated_data["items"])
            )
        except OrderError as exc:
            return error_response(exc)

        order = self._service.get_order(order.id)
        return Response(OrderSerializer(order).data)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


def _cart_response(cart: SessionCart, delivery_method: str) -> Response:
    totals = cart.totals(delivery_method)
    serializer = CartSerializer({"items": cart.items(), **totals.as_dict()})
    return Response(serializer.data)


class CartView(APIView):
    """GET / POST / DELETE /api/v1/cart/"""

    permission_classes = [AllowAny]

    def get(self, request: Request) -> Response:
        delivery_method = request.query_params.get("delivery_method", "pickup")
        return _cart_response(SessionCart(request.session), delivery_method)

    def post(self, request: Request) -> Response:
        serializer = CartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = SessionCart(request.session)
        try:
            cart.add(**serializer.validated_data)
        except OrderError as exc:
            return error_response(exc)
        response = _cart_response(cart, "pickup")
        response.status_code = status.HTTP_201_CREATED
        return response

    def delete(self, request: Request) -> Response:
        SessionCart(request.session).clear()
        return Response(status=status.HTTP_204_NO_CONTENT)


class CartItemView(APIView):
    """PATCH / DELETE /api/v1/cart/items/{product_id}/"""

    permission_classes = [AllowAny]

    def patch(self, request: Request, product_id: str) -> Response:
        serializer = CartQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = SessionCart(request.session)
        if not cart.set_quantity(product_id, serializer.validated_data["quantity"]):
            return Response(
                {"detail": "Item not in cart."}, status=status.HTTP_404_NOT_FOUND
            )
        return _cart_response(cart, "pickup")

    def delete(self, request: Request, product_id: str) -> Response:
        cart = SessionCart(request.session)
        if not cart.remove(product_id):
            return Response(
                {"detail": "Item not in cart."}, status=status.HTTP_404_NOT_FOUND
            )
        return _cart_response(cart, "pickup")


class CheckoutView(APIView):
    """POST /api/v1/cart/checkout/

    Turns the session cart into an order, then empties the cart.
    """

    permission_classes = [AllowAny]
    throttle_scope = "order_creation"

    def post(self, request: Request) -> Response:
        serializer = CustomerDetailsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = SessionCart(request.session)
        dto = CreateOrderDTO(items=cart.items(), **serializer.validated_data)

        service = _build_service()
        try:
            order = service.create_order(dto)
        except OrderError as exc:
            return error_response(exc)

        cart.clear()
        order = service.get_order(order.id)
        return Response(
            OrderTrackingSerializer(order).data, status=status.HTTP_201_CREATED
        )
