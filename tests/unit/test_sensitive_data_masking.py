import pytest

from config.settings import mask_sensitive_data

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    @pytest.mark.parametrize("pan", ["4111111111111111", "4111 1111 1111 1111", "5500-0000-0000-0004"])
    def test_card_numbers_masked(self, pan):
        result = mask_sensitive_data(None, None, {"event": "test", "detail": f"card {pan}"})
        assert pan not in result["detail"]
        assert "***MASKED***" in result["detail"]

    def test_client_secret_masked(self):
        event_dict = {"event": "test", "data": "client_secret='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]

    def test_bearer_token_masked(self):
        event_dict = {"event": "test", "header": "Authorization: Bearer-abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]

    def test_access_token_masked(self):
        event_dict = {"event": "paypal.token", "body": "access_token=A21AAF"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "A21AAF" not in result["body"]

    def test_non_sensitive_data_unchanged(self):
        event_dict = {
            "event": "order.payment_completed",
            "order_number": "ORD-20250101-A1B2C3",
            "paid_amount": 2999,
            "transaction_id": "8MC585209K746392H",
        }
        result = mask_sensitive_data(None, None, dict(event_dict))
        assert result == event_dict
