"""
Tests for gift registries.
"""
import re

import pytest

from src.core.errors import BadRequestError, ConflictError, ExternalServiceError, ForbiddenError, NotFoundError
from src.db.models import RegistryStatus
from src.services import registry as registry_service


class TestRegistryService:
    """Test suite for registry ownership, items and purchases."""

    @pytest.mark.unit
    def test_share_code_alphabet(self, db) -> None:
        code = registry_service.generate_share_code(db)
        assert re.fullmatch(r"[A-HJ-NP-Z2-9]{8}", code)

    @pytest.mark.unit
    def test_one_registry_per_user(self, db, make_user) -> None:
        user = make_user()
        registry = registry_service.create_registry(db, user, "  Our Wedding  ")
        assert registry.name == "Our Wedding"
        assert registry.is_public is True
        assert registry.status == RegistryStatus.ACTIVE.value

        with pytest.raises(ConflictError, match="You already have a registry"):
            registry_service.create_registry(db, user, "Second")

    @pytest.mark.unit
    def test_blank_name_rejected(self, db, make_user) -> None:
        with pytest.raises(BadRequestError):
            registry_service.create_registry(db, make_user(), "   ")

    @pytest.mark.unit
    def test_private_registry_visible_only_to_owner(self, db, make_user) -> None:
        owner = make_user()
        registry = registry_service.create_registry(db, owner, "Baby Shower")
        registry_service.update_registry(db, owner, registry.share_code, {"is_public": False})

        with pytest.raises(ForbiddenError, match="This registry is private"):
            registry_service.get_registry(db, registry.share_code, make_user())
        assert registry_service.get_registry(db, registry.share_code.lower(), owner)["is_owner"] is True

    @pytest.mark.unit
    def test_only_owner_can_modify(self, db, make_user, make_variant) -> None:
        owner = make_user()
        registry = registry_service.create_registry(db, owner, "Housewarming")
        with pytest.raises(NotFoundError):
            registry_service.add_item(db, make_user(), registry.share_code, make_variant().id)

    @pytest.mark.unit
    def test_items_sorted_by_priority(self, db, make_user, make_variant) -> None:
        owner = make_user()
        registry = registry_service.create_registry(db, owner, "Wedding")
        low = registry_service.add_item(db, owner, registry.share_code, make_variant(name="Towels").id, priority="LOW")
        high = registry_service.add_item(db, owner, registry.share_code, make_variant(name="Mixer").id, priority="HIGH")
        medium = registry_service.add_item(db, owner, registry.share_code, make_variant(name="Vase").id)

        items = registry_service.get_registry(db, registry.share_code)["items"]

        assert [item.id for item in items] == [high.id, medium.id, low.id]

    @pytest.mark.unit
    def test_duplicate_item_and_bad_priority(self, db, make_user, make_variant) -> None:
        owner = make_user()
        registry = registry_service.create_registry(db, owner, "Wedding")
        variant = make_variant()
        registry_service.add_item(db, owner, registry.share_code, variant.id)

        with pytest.raises(ConflictError):
            registry_service.add_item(db, owner, registry.share_code, variant.id)
        with pytest.raises(BadRequestError, match="Invalid priority"):
            registry_service.add_item(db, owner, registry.share_code, make_variant().id, priority="URGENT")

    @pytest.mark.unit
    def test_purchases_complete_registry(self, db, make_user, make_variant) -> None:
        owner = make_user()
        registry = registry_service.create_registry(db, owner, "Wedding")
        item = registry_service.add_item(db, owner, registry.share_code, make_variant().id, quantity=2)

        registry_service.purchase_item(db, registry.share_code, item.id, 1)
        assert item.remaining == 1
        assert registry.status == RegistryStatus.ACTIVE.value

        with pytest.raises(BadRequestError, match="Only 1 items remaining"):
            registry_service.purchase_item(db, registry.share_code, item.id, 2)

        registry_service.purchase_item(db, registry.share_code, item.id, 1)
        assert item.remaining == 0
        assert registry.status == RegistryStatus.COMPLETED.value

    @pytest.mark.unit
    def test_share_reports_failed_recipients(self, db, make_user, email_client) -> None:
        owner = make_user(name="Sam")
        registry = registry_service.create_registry(db, owner, "Wedding")

        def _send(message):
            if message.to == "bad@example.com":
                raise ExternalServiceError("SendGrid")
            return True

        email_client.send.side_effect = _send

        with pytest.raises(ExternalServiceError) as exc_info:
            registry_service.share_registry(
                db, owner, registry.share_code, ["a@example.com", "bad@example.com"], "Hi!", email_client
            )
        assert exc_info.value.details == {"failed": ["bad@example.com"]}
        assert email_client.send.call_count == 2

        sent_message = email_client.send.call_args_list[0].args[0]
        assert sent_message.subject == "Sam shared their registry with you"
        assert registry.share_code in sent_message.html


class TestRegistryAPI:
    """Test suite for /api/registry."""

    @pytest.mark.integration
    def test_requires_sign_in(self, client) -> None:
        response = client.post("/api/registry", json={"name": "Wedding"})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    @pytest.mark.integration
    def test_owner_flow_and_guest_purchase(self, client, make_user, make_variant, auth) -> None:
        owner = make_user()
        variant = make_variant(name="Stand Mixer")

        created = client.post("/api/registry", json={"name": "Wedding"}, headers=auth(owner))
        assert created.status_code == 201
        share_code = created.json()["share_code"]

        added = client.post(
            f"/api/registry/{share_code}/items",
            json={"variant_id": str(variant.id), "quantity": 1, "priority": "HIGH"},
            headers=auth(owner),
        )
        assert added.status_code == 201
        item_id = added.json()["id"]

        guest_view = client.get(f"/api/registry/{share_code}")
        assert guest_view.status_code == 200
        assert guest_view.json()["is_owner"] is False
        assert guest_view.json()["items"][0]["product_name"] == "Stand Mixer"

        purchased = client.post(f"/api/registry/{share_code}/items/{item_id}/purchase", json={"quantity": 1})
        assert purchased.status_code == 200
        assert purchased.json()["remaining"] == 0

        mine = client.get("/api/registry", headers=auth(owner))
        assert mine.json()["registry"]["status"] == "COMPLETED"

    @pytest.mark.integration
    def test_delete(self, client, make_user, auth) -> None:
        owner = make_user()
        share_code = client.post("/api/registry", json={"name": "Wedding"}, headers=auth(owner)).json()["share_code"]

        assert client.delete(f"/api/registry/{share_code}", headers=auth(owner)).status_code == 204
        assert client.get(f"/api/registry/{share_code}").status_code == 404

    @pytest.mark.integration
    @pytest.mark.parametrize("address", ["not-an-address", "a@b..c", "friend@localhost"])
    def test_share_validates_addresses(self, client, make_user, auth, email_client, address) -> None:
        owner = make_user()
        share_code = client.post("/api/registry", json={"name": "Wedding"}, headers=auth(owner)).json()["share_code"]

        response = client.post(
            f"/api/registry/{share_code}/share",
            json={"emails": ["friend@example.com", address]},
            headers=auth(owner),
        )

        assert response.status_code == 400
        assert list(response.json()["details"]["fieldErrors"]) == ["emails.1"]
        email_client.send.assert_not_called()
