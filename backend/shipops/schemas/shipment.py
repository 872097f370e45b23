"""
Pydantic schemas for shipments, tracking and delivery

Request models stay permissive on purpose-specific fields (carrier, status,
weights, address parts): bounds and formats are checked by
shipops.services.validation so every violation is reported at once.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class ShippingAddress(BaseModel):
    """Destination address"""
    name: Optional[str] = Field(None, max_length=200)
    address1: Optional[str] = Field(None, max_length=255)
    address2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)


class PackageDimensions(BaseModel):
    """Package dimensions in centimetres"""
    length: float = 0
    width: float = 0
    height: float = 0

    @property
    def total(self) -> float:
        return self.length + self.width + self.height


class PackageDetails(BaseModel):
    """Package weight (kg), dimensions and declared value"""
    weight: float
    dimensions: PackageDimensions = Field(default_factory=PackageDimensions)
    description: Optional[str] = Field(None, max_length=500)
    value: float = Field(0, description="Declared value in order currency")


class ShippingRateRequest(BaseModel):
    """Quote request. No shipment is created."""
    carrier: str = Field(..., description="Carrier key: blue_dart, fedex, dhl")
    service_type: Optional[str] = Field(None, description="Limit quotes to one service level")
    order_id: Optional[int] = None
    shipping_address: ShippingAddress
    package: PackageDetails
    insurance_required: bool = False


class ShipmentCreate(BaseModel):
    """Request to hand an order to a carrier"""
    order_id: int
    order_number: Optional[str] = Field(None, max_length=50)
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=30)
    shipping_address: ShippingAddress
    package: PackageDetails
    carrier: str = Field(..., description="Carrier key: blue_dart, fedex, dhl")
    service_type: str = Field("standard", description="express, standard, economy, same_day")
    special_instructions: Optional[str] = Field(None, max_length=1000)
    insurance_required: bool = False
    signature_required: bool = False


class ShipmentStatusUpdate(BaseModel):
    """Administrative status override"""
    status: str
    description: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=200)


class TrackingUpdate(BaseModel):
    """Tracking event pushed by a carrier webhook or entered by an operator"""
    tracking_number: str
    status: str
    description: str
    location: Optional[str] = Field(None, max_length=200)
    timestamp: Optional[datetime] = Field(None, description="When the event happened; defaults to now")
    delivery_attempt: Optional[int] = None
    carrier_data: Optional[Dict[str, Any]] = None


class DeliveryConfirmation(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class DeliveryIssueReport(BaseModel):
    issue: str = Field(..., min_length=1, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)


class DeliveryReschedule(BaseModel):
    new_date: datetime
    reason: str = Field(..., min_length=1, max_length=500)


class ShipmentCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class ShipmentResponse(BaseModel):
    """Shipment record"""
    id: int
    order_id: int
    carrier: str
    service_type: str
    tracking_number: str
    tracking_url: Optional[str] = None
    status: str
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    estimated_delivery: Optional[datetime] = None
    last_event_at: Optional[datetime] = None
    special_instructions: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TrackingEventResponse(BaseModel):
    id: int
    shipment_id: int
    status: str
    location: Optional[str] = None
    description: Optional[str] = None
    occurred_at: datetime
    delivery_attempt: Optional[int] = None
    source: str

    model_config = {"from_attributes": True}


class TrackingResponse(BaseModel):
    """Local shipment snapshot plus the carrier's tracking payload"""
    shipment: ShipmentResponse
    tracking: Dict[str, Any]
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


class ShippingRate(BaseModel):
    """One quoted service level"""
    carrier: str
    service_type: str
    service_name: str
    service_code: str
    delivery_time: str
    rate: float
    additional_charges: Dict[str, float] = Field(default_factory=dict)
    total_rate: float
    description: str


class DeliverySummary(BaseModel):
    total_shipments: int
    delivered_shipments: int
    in_transit_shipments: int
    failed_deliveries: int
    average_delivery_time_days: float = 0.0
    status_summary: Dict[str, int]


class DelayedShipment(BaseModel):
    id: int
    order_id: int
    order_number: str
    tracking_number: str
    carrier: str
    status: str
    estimated_delivery: datetime
    days_delayed: int


class CarrierListResponse(BaseModel):
    carriers: List[str]
