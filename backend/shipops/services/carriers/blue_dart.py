"""
Blue Dart adapter

Domestic express carrier. AWB numbers are prefixed BD.
"""
from shipops.services.carriers.base import SandboxCarrier


class BlueDartCarrier(SandboxCarrier):
    key = "blue_dart"
    display_name = "Blue Dart"

    tracking_prefix = "BD"
    transit_days = 2
    track_transit_days = 1
    base_charge = 150
    fuel_surcharge = 15
    refund_amount = 100
    hub_location = "MUMBAI"
    tracking_url_template = "https://www.bluedart.com/track/{tracking_number}"
    rate_card = (
        ("express", "EXPRESS", "BD_EXPRESS", "1-2 days", 200, "Express delivery"),
        ("standard", "STANDARD", "BD_STANDARD", "2-3 days", 150, "Standard delivery"),
        ("economy", "ECONOMY", "BD_ECONOMY", "3-5 days", 100, "Economy delivery"),
    )
