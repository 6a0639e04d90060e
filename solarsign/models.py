from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from solarsign.utils.datetime_utils import to_iso_millis

# Normalized coordinates are compared with a small tolerance so that authored
# values such as 0.1 + 0.9 do not fail on float rounding.
COORDINATE_EPSILON = 1e-9


class BaseRequest(BaseModel):
    """Base class for all request models - ignores extra fields."""
    model_config = ConfigDict(extra="ignore")


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Enums
class FieldType(str, Enum):
    SIGNATURE = "signature"
    TEXT = "text"
    DATE = "date"
    CHECKBOX = "checkbox"


class FieldAnchor(str, Enum):
    """Which source document a field's pages were authored against."""
    PRIMARY = "primary"      # Contract; shifted by the page offset
    SECONDARY = "secondary"  # Appended document; lands after the primary pages


class DocumentKind(str, Enum):
    CONTRACT = "contract"
    DISCLAIMER = "disclaimer"
    BOOKING_CONFIRMATION = "booking_confirmation"


class CalculatorType(str, Enum):
    FLUX = "flux"
    OFF_PEAK = "off-peak"


# Field coordinate model
class FieldArea(BaseModel):
    """
    One rectangle of a signature field.

    x, y, w, h are fractions of the page size with the origin at the
    top-left corner. page is the authored page number (1-based in the field
    maps shipped with this service).
    """
    model_config = ConfigDict(frozen=True)

    page: int = Field(..., ge=0)
    x: float = Field(..., ge=0, le=1)
    y: float = Field(..., ge=0, le=1)
    w: float = Field(..., ge=0, le=1)
    h: float = Field(..., ge=0, le=1)

    @model_validator(mode="after")
    def check_inside_page(self) -> "FieldArea":
        if self.x + self.w > 1 + COORDINATE_EPSILON:
            raise ValueError(f"Area exceeds page width: x + w = {self.x + self.w}")
        if self.y + self.h > 1 + COORDINATE_EPSILON:
            raise ValueError(f"Area exceeds page height: y + h = {self.y + self.h}")
        return self


class SignatureField(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    type: FieldType
    role: str = Field(default="First Party", min_length=1)
    required: bool = True
    areas: List[FieldArea] = Field(..., min_length=1)
    anchor: FieldAnchor = FieldAnchor.PRIMARY


# Digital footprint (client-supplied, stored as-is)
class DeviceInfo(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    platform: str = ""
    user_agent: str = ""
    screen_resolution: str = ""
    timezone: str = ""
    language: str = ""


class BoundingBox(CamelModel):
    min_x: float = 0
    min_y: float = 0
    max_x: float = 0
    max_y: float = 0


class StrokeData(CamelModel):
    """Behavioural biometrics captured while the customer drew the signature."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    total_points: int = 0
    # Older clients send "duration"
    duration_ms: float = Field(
        default=0,
        validation_alias=AliasChoices("durationMs", "duration", "duration_ms"),
        serialization_alias="durationMs",
    )
    start_time: float = 0
    end_time: float = 0
    pressure_points: List[float] = Field(default_factory=list)
    velocity_points: List[float] = Field(default_factory=list)
    bounding_box: BoundingBox = Field(default_factory=BoundingBox)


class FootprintSecurity(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    hash: str = ""
    timestamp: float = 0
    session_id: str = ""


class DigitalFootprint(CamelModel):
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)
    signature_data: StrokeData = Field(default_factory=StrokeData)
    security: FootprintSecurity = Field(default_factory=FootprintSecurity)

    def to_wire(self) -> Dict[str, Any]:
        """camelCase dict as sent by the client."""
        return self.model_dump(mode="json", by_alias=True)


class SignaturePosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float
    page: int


class SignatureMetadata(CamelModel):
    """
    Persistent record of one signing event. Write-once.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    signature_id: str
    opportunity_id: str
    signed_by: str
    signed_at: datetime
    digital_footprint: DigitalFootprint
    pdf_path: str
    signature_position: SignaturePosition
    verification_hash: str

    @field_serializer("signed_at")
    def _serialize_signed_at(self, value: datetime) -> str:
        return to_iso_millis(value)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# Request Models
class SignPdfRequest(BaseRequest):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    pdf_path: str = Field(..., min_length=1)
    signature_data: str = Field(..., min_length=1)
    digital_footprint: DigitalFootprint
    opportunity_id: str = Field(..., min_length=1)
    signed_by: str = Field(..., min_length=1)
    page_numbers: Optional[List[int]] = None

    @field_validator("pdf_path")
    @classmethod
    def validate_pdf_extension(cls, v: str) -> str:
        if not v.lower().endswith(".pdf"):
            raise ValueError("pdfPath must point to a .pdf file")
        return v

    @field_validator("page_numbers")
    @classmethod
    def validate_page_numbers(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return v
        if not v:
            raise ValueError("pageNumbers must not be empty")
        if any(p < 1 for p in v):
            raise ValueError("pageNumbers are 1-indexed")
        return v


class CustomerInfo(BaseRequest):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=254)


class ContractWorkflowRequest(BaseRequest):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    contract_pdf_path: str = Field(..., min_length=1)
    booking_confirmation_pdf_path: str = Field(..., min_length=1)
    opportunity_id: str = Field(..., min_length=1)
    customer: CustomerInfo
    calculator_type: CalculatorType = CalculatorType.FLUX


class PreparedSubmitRequest(BaseRequest):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    opportunity_id: str = Field(..., min_length=1)
    customer: CustomerInfo


class DisclaimerWorkflowRequest(BaseRequest):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    disclaimer_pdf_path: str = Field(..., min_length=1)
    opportunity_id: str = Field(..., min_length=1)
    customer: CustomerInfo
    installer_name: Optional[str] = None
    values: Dict[str, Any] = Field(default_factory=dict)


class BookingWorkflowRequest(BaseRequest):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    booking_confirmation_pdf_path: str = Field(..., min_length=1)
    opportunity_id: str = Field(..., min_length=1)
    customer: CustomerInfo


class LocalContractSignRequest(BaseRequest):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    contract_pdf_path: str = Field(..., min_length=1)
    booking_confirmation_pdf_path: str = Field(..., min_length=1)
    opportunity_id: str = Field(..., min_length=1)
    signed_by: str = Field(..., min_length=1)
    signature_data: str = Field(..., min_length=1)
    digital_footprint: DigitalFootprint
    calculator_type: CalculatorType = CalculatorType.FLUX


# Response Models
class SignPdfResponse(CamelModel):
    success: bool
    message: str
    metadata: Optional[SignatureMetadata] = None
    error: Optional[str] = None
    code: Optional[str] = None


class VerifySignatureResponse(CamelModel):
    success: bool
    is_valid: bool
    metadata: Optional[SignatureMetadata] = None
    error: Optional[str] = None


class SignatureHistoryResponse(CamelModel):
    success: bool
    signatures: List[SignatureMetadata] = Field(default_factory=list)
    error: Optional[str] = None


class WorkflowResponse(CamelModel):
    success: bool
    message: str
    template_id: Optional[int] = None
    submission_id: Optional[int] = None
    signing_url: Optional[str] = None
    total_pages: Optional[int] = None
    unvalidated_page_count: bool = False
    signature_id: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    error: bool = True
    code: str
    message: str
    request_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
