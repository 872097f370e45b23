"""
FedEx adapter
"""
from shipops.services.carriers.base import SandboxCarrier


class FedExCarrier(SandboxCarrier):
    key = "fedex"
    display_name = "FedEx"

    tracking_prefix = "FX"
    transit_days = 3
    track_transit_days = 2
    base_charge = 250
    fuel_surcharge = 25
    refund_amount = 150
    hub_location = "NEW DELHI"
    tracking_url_template = "https://www.fedex.com/track/{tracking_number}"
    rate_card = (
        ("express", "FEDEX_EXPRESS", "FX_EXPRESS", "1-2 days", 300, "Express delivery"),
        ("standard", "FEDEX_GROUND", "FX_GROUND", "2-4 days", 200, "Ground delivery"),
        ("economy", "FEDEX_ECONOMY", "FX_ECONOMY", "4-6 days", 150, "Economy delivery"),
    )
