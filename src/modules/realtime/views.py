"""Server-Sent Events stream of order events.

``GET /api/v1/realtime/stream/`` keeps the response open and writes one
SSE event per order message:

- staff (cashier, kitchen, admin) without parameters follow every order;
- anyone passing ``?order_number=`` follows that order only.

The subscription lives exactly as long as the response: when the client
disconnects the server closes the generator, which closes the connection
and removes it from the registry.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, Iterator

import structlog
from django.conf import settings
from django.http import StreamingHttpResponse
from rest_framework import renderers, status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.permissions import STAFF_ROLES, resolve_actor_role
from modules.orders.exceptions import OrderError
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.orders.views import error_response
from modules.realtime.connections import QueueConnection
from modules.realtime.hub import channel_registry
from modules.realtime.registry import Broadcast, ChannelRegistry, ForOrder

logger = structlog.get_logger(__name__)


class EventStreamRenderer(renderers.BaseRenderer):
    """Lets DRF content negotiation accept ``Accept: text/event-stream``."""

    media_type = "text/event-stream"
    format = "event-stream"
    charset = "utf-8"

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if data is None:
            return b""
        return json.dumps(data).encode(self.charset)


def format_event(message: Dict[str, Any]) -> str:
    return f"event: {message['type']}\ndata: {json.dumps(message)}\n\n"


class EventStream:
    """SSE frames of one connection, as a closable iterable.

    ``StreamingHttpResponse`` calls ``close()`` when the request ends, even
    if the body was never iterated, so the subscription cannot leak.
    Keep-alive comments are written when no message arrives for
    *keepalive_seconds*.
    """

    def __init__(self, connection: QueueConnection, keepalive_seconds: float) -> None:
        self._connection = connection
        self._keepalive_seconds = keepalive_seconds

    def __iter__(self) -> Iterator[str]:
        try:
            yield "retry: 3000\n\n"
            while not self._connection.closed:
                message = self._connection.receive(timeout=self._keepalive_seconds)
                if message is None:
                    yield ": keep-alive\n\n"
                    continue
                yield format_event(message)
        finally:
            self._connection.close()

    def close(self) -> None:
        self._connection.close()


class OrderEventStreamView(APIView):
    permission_classes = [AllowAny]
    renderer_classes = [renderers.JSONRenderer, EventStreamRenderer]
    registry: ChannelRegistry = channel_registry

    def get(self, request: Request) -> Any:
        role = resolve_actor_role(request.user)
        order_number = request.query_params.get("order_number")

        if order_number:
            service = OrderService(order_repository=OrderDjangoRepository())
            try:
                order = service.get_by_order_number(order_number)
            except OrderError as exc:
                return error_response(exc)
            scope = ForOrder(order_id=str(order.id))
        elif role in STAFF_ROLES:
            scope = Broadcast()
        else:
            return Response(
                {"detail": "order_number is required to follow an order."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        realtime = settings.REALTIME
        connection = QueueConnection(maxsize=realtime["MAILBOX_SIZE"])
        subscriber_id = uuid.uuid4().hex
        self.registry.subscribe(subscriber_id, role, scope, connection)
        logger.info("realtime.stream_opened", subscriber_id=subscriber_id, role=role)

        response = StreamingHttpResponse(
            EventStream(connection, realtime["KEEPALIVE_SECONDS"]),
            content_type="text/event-stream",
        )
        response["Cache-Control"] = "no-cache"
        response["X-Accel-Buffering"] = "no"
        return response
