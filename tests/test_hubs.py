"""
Tests for SmartPost hub routing.
"""
import pytest

from shipping_engine.modules.shipping.hubs import (
    CENTRAL_HUB_ID,
    SMARTPOST_HUBS,
    HubRouter,
)

US_REGIONS = (
    "AL AK AZ AR CA CO CT DE FL GA HI ID IL IN IA KS KY LA ME MD MA MI MN MS MO "
    "MT NE NV NH NJ NM NY NC ND OH OK OR PA RI SC SD TN TX UT VT VA WA WV WI WY DC"
).split()


class TestDefaultHubRouter:

    def test_every_state_and_dc_has_a_serving_hub(self, hub_router):
        for region in US_REGIONS:
            hub = hub_router.resolve_hub(region)
            assert hub.serves(region), region

    def test_covered_regions(self, hub_router):
        covered = hub_router.covered_regions()
        assert len(covered) == 51
        assert set(covered) == set(US_REGIONS)

    @pytest.mark.parametrize("region", ["PR", "GU", "ON", "", None, "ZZ"])
    def test_uncovered_region_uses_central_hub(self, hub_router, region):
        hub = hub_router.resolve_hub(region)
        assert hub.id == CENTRAL_HUB_ID == "5648"

    def test_region_is_normalized(self, hub_router):
        assert hub_router.resolve_hub(" ca ").id == "5902"

    def test_first_listed_hub_wins(self, hub_router):
        # Dallas is listed before Houston, Los Angeles before Sacramento
        assert hub_router.resolve_hub("TX").id == "5751"
        assert hub_router.resolve_hub("CA").id == "5902"
        assert hub_router.resolve_hub("NV").id == "5958"

    def test_hub_lookup(self, hub_router):
        assert "5902" in hub_router
        assert "0000" not in hub_router
        assert hub_router.get_hub("5379").city == "Memphis"
        assert hub_router.get_hub("0000") is None
        assert len(hub_router.hubs) == len(SMARTPOST_HUBS)


class TestCustomHubRouter:

    def test_table_order_decides_overlaps(self, tiny_hub_router):
        assert tiny_hub_router.resolve_hub("CA").id == "H1"
        assert tiny_hub_router.resolve_hub("NY").id == "H2"

    def test_fallback(self, tiny_hub_router):
        assert tiny_hub_router.fallback_hub.id == "H3"
        assert tiny_hub_router.resolve_hub("TX").id == "H3"

    def test_unknown_fallback_rejected(self):
        with pytest.raises(ValueError, match="Fallback hub"):
            HubRouter(SMARTPOST_HUBS, fallback_hub_id="9999")
