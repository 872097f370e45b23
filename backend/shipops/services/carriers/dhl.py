"""
DHL adapter

International carrier; longest transit estimate of the three.
"""
from shipops.services.carriers.base import SandboxCarrier


class DHLCarrier(SandboxCarrier):
    key = "dhl"
    display_name = "DHL"

    tracking_prefix = "DHL"
    transit_days = 4
    track_transit_days = 3
    base_charge = 300
    fuel_surcharge = 30
    refund_amount = 200
    hub_location = "BANGALORE"
    tracking_url_template = "https://www.dhl.com/track/{tracking_number}"
    rate_card = (
        ("express", "DHL_EXPRESS", "DHL_EXPRESS", "1-2 days", 400, "Express delivery"),
        ("standard", "DHL_STANDARD", "DHL_STANDARD", "3-4 days", 300, "Standard delivery"),
        ("economy", "DHL_ECONOMY", "DHL_ECONOMY", "5-7 days", 250, "Economy delivery"),
    )
