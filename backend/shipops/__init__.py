"""ShipOps - shipment fulfillment and tracking service."""

__version__ = "1.0.0"
