# Overview: Pytest coverage for the order-binding token; hashing, cookie format and cart init.

from orderdesk.models import Order
from orderdesk.services import order_binding_service
from orderdesk.services.order_binding_service import (
    OrderBinding,
    format_binding_cookie,
    hash_token,
    init_cart_binding,
    mint_binding,
    parse_binding_cookie,
    verify_token,
)


class TestTokenHashing:
    def test_hash_is_stable_and_peppered(self, app):
        token = order_binding_service.generate_token()

        assert hash_token(token) == hash_token(token)
        assert token not in hash_token(token)
        assert len(hash_token(token)) == 64

        app.config["ORDER_TOKEN_PEPPER"] = "other-pepper"
        try:
            other = hash_token(token)
        finally:
            app.config["ORDER_TOKEN_PEPPER"] = "test-pepper"
        assert other != hash_token(token)

    def test_verify(self, app):
        token = order_binding_service.generate_token()
        stored = hash_token(token)

        assert verify_token(token, stored) is True
        assert verify_token(token + "x", stored) is False
        assert verify_token(None, stored) is False
        assert verify_token(token, None) is False


class TestBindingCookie:
    def test_round_trip(self):
        binding = mint_binding()

        assert parse_binding_cookie(format_binding_cookie(binding)) == binding
        assert binding.short_id == binding.order_id[:8].upper()

    def test_malformed_values(self):
        valid_id = "a" * 32
        for value in (None, "", "no-dot", f"{valid_id}.", ".token", f"{valid_id}.a.b", "XYZ.token", f"{'A' * 32}.token"):
            assert parse_binding_cookie(value) is None


class TestInitCartBinding:
    def test_mints_when_absent(self, db_session):
        binding, is_new = init_cart_binding(None)

        assert is_new is True
        assert len(binding.order_id) == 32

    def test_reuses_binding_without_order(self, db_session):
        presented = mint_binding()

        binding, is_new = init_cart_binding(presented)

        assert binding == presented
        assert is_new is False

    def test_reuses_matching_draft(self, db_session):
        presented = mint_binding()
        db_session.add(Order(
            id=presented.order_id, short_id=presented.short_id, status="NEW",
            items=[], pricing={}, customer={}, token_hash=hash_token(presented.token),
        ))
        db_session.commit()

        binding, is_new = init_cart_binding(presented)

        assert binding == presented
        assert is_new is False

    def test_mints_for_finalized_order(self, db_session):
        presented = mint_binding()
        db_session.add(Order(
            id=presented.order_id, short_id=presented.short_id, status="CONFIRMED",
            items=[], pricing={}, customer={}, token_hash=hash_token(presented.token),
        ))
        db_session.commit()

        binding, is_new = init_cart_binding(presented)

        assert is_new is True
        assert binding.order_id != presented.order_id

    def test_mints_for_foreign_token(self, db_session):
        owner = mint_binding()
        db_session.add(Order(
            id=owner.order_id, short_id=owner.short_id, status="NEW",
            items=[], pricing={}, customer={}, token_hash=hash_token(owner.token),
        ))
        db_session.commit()

        binding, is_new = init_cart_binding(OrderBinding(order_id=owner.order_id, token="stolen"))

        assert is_new is True
        assert binding.order_id != owner.order_id
