"""
Delivery channel: address and phone are needed before the kitchen starts.
Rider assignment and hand-over live in the dispatch service.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from rest_api.models import DeliveryOrder, Order
from shared.config.constants import DEFAULT_CUSTOMER_NAME, Channel
from shared.security.context import ActorContext
from shared.utils.schemas import OrderInput, OrderPatch

from .base import ChannelBehavior, ValidationContext


class DeliveryBehavior(ChannelBehavior):
    channel = Channel.DELIVERY

    def field_errors(self, fields: dict[str, Any], context: str) -> list[str]:
        errors = []
        if context == ValidationContext.FIRE:
            if not fields.get("delivery_address"):
                errors.append("delivery_address is required for DELIVERY")
            if not fields.get("customer_phone"):
                errors.append("customer_phone is required for DELIVERY")
        return errors

    def extension_fields(self, order: Order) -> dict[str, Any]:
        if order.delivery is None:
            return {}
        return {
            "delivery_address": order.delivery.delivery_address,
            "customer_phone": order.delivery.customer_phone,
        }

    def create_extension(
        self, db: Session, ctx: ActorContext, order: Order, data: OrderInput
    ) -> None:
        order.delivery = DeliveryOrder(
            customer_name=data.customer_name or DEFAULT_CUSTOMER_NAME,
            customer_phone=data.customer_phone or "",
            delivery_address=data.delivery_address or "",
            delivery_notes=data.delivery_notes,
        )

    def update_extension(
        self, db: Session, ctx: ActorContext, order: Order, patch: OrderPatch
    ) -> None:
        given = patch.model_fields_set
        extension = order.delivery
        if "customer_name" in given:
            extension.customer_name = patch.customer_name or DEFAULT_CUSTOMER_NAME
        if "customer_phone" in given:
            extension.customer_phone = patch.customer_phone or ""
        if "delivery_address" in given:
            extension.delivery_address = patch.delivery_address or ""
        if "delivery_notes" in given:
            extension.delivery_notes = patch.delivery_notes
