"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import OrderStatus
from modules.orders.dtos import CartItemDTO, CheckoutFormDTO, ShippingAddressDTO
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.payments.constants import PaymentStatus

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CartItemSerializer(serializers.Serializer):
    """A cart line; structural checks happen in the checkout service."""

    id = serializers.CharField(allow_blank=True, default="")
    name = serializers.CharField(allow_blank=True, default="")
    price = serializers.IntegerField(default=0)
    quantity = serializers.IntegerField(default=0)
    is_digital = serializers.BooleanField(default=False)
    image = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class ShippingAddressSerializer(serializers.Serializer):
    line1 = serializers.CharField(allow_blank=True, default="")
    line2 = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    city = serializers.CharField(allow_blank=True, default="")
    state = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    postal_code = serializers.CharField(allow_blank=True, default="")
    country = serializers.CharField(allow_blank=True, default="")


class CheckoutSerializer(serializers.Serializer):
    """Validates the shape of a checkout request.

    Field-level business validation (email, address completeness) is
    done by the checkout service so errors come back as ``field_errors``.
    """

    customer_name = serializers.CharField(allow_blank=True, default="")
    customer_email = serializers.CharField(allow_blank=True, default="")
    customer_phone = serializers.CharField(allow_blank=True, default="")
    shipping_address = ShippingAddressSerializer(required=False, allow_null=True)
    payment_method = serializers.CharField(default="paypal")
    items = CartItemSerializer(many=True, allow_empty=True)
    confirmed = serializers.BooleanField(default=False)

    def to_dtos(self) -> tuple[CheckoutFormDTO, list[CartItemDTO], bool]:
        data = self.validated_data
        address = data.get("shipping_address")
        form = CheckoutFormDTO(
            customer_name=data["customer_name"],
            customer_email=data["customer_email"],
            customer_phone=data["customer_phone"],
            shipping_address=ShippingAddressDTO(**address) if address else None,
            payment_method=data["payment_method"],
        )
        items = [CartItemDTO(**item) for item in data["items"]]
        return form, items, data["confirmed"]


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class UpdatePaymentStatusSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    should_restock = serializers.BooleanField(default=True)


class RefundOrderSerializer(serializers.Serializer):
    amount = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with the checkout snapshot."""

    line_total = serializers.IntegerField(read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "price",
            "quantity",
            "line_total",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class ShippingAddressOutputSerializer(serializers.Serializer):
    line1 = serializers.CharField(source="shipping_line1")
    line2 = serializers.CharField(source="shipping_line2", allow_null=True)
    city = serializers.CharField(source="shipping_city")
    state = serializers.CharField(source="shipping_state", allow_null=True)
    postal_code = serializers.CharField(source="shipping_postal_code")
    country = serializers.CharField(source="shipping_country")


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    shipping_address = serializers.SerializerMethodField()
    total = serializers.IntegerField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_name",
            "customer_email",
            "customer_phone",
            "shipping_address",
            "is_digital",
            "status",
            "payment_status",
            "payment_method",
            "payment_provider_id",
            "subtotal",
            "shipping_amount",
            "tax_amount",
            "total",
            "paid_amount",
            "paid_at",
            "refund_amount",
            "refunded_at",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields

    def get_shipping_address(self, order: Order):
        if not order.has_shipping_address:
            return None
        return ShippingAddressOutputSerializer(order).data
