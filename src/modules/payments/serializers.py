"""Payment DRF serializers (input validation and response shaping)."""

from __future__ import annotations

from rest_framework import serializers


class CapturePaymentSerializer(serializers.Serializer):
    provider_payment_id = serializers.CharField(max_length=255)


class CreatePaymentOutputSerializer(serializers.Serializer):
    provider_payment_id = serializers.CharField()
    provider_id = serializers.CharField()
    status = serializers.CharField()
    approval_url = serializers.CharField(allow_null=True)
    client_token = serializers.CharField(allow_null=True)


class ProviderInfoSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    supported_currencies = serializers.ListField(child=serializers.CharField())
