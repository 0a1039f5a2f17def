from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field
from typing import Any, List, Optional, Union


class CamelModel(BaseModel):
    """Request bodies use the client's camelCase keys; snake_case is accepted too"""
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Auth Schemas
# ============================================================================

class UserRegister(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=8)
    phone_number: Optional[str] = Field(None, validation_alias=AliasChoices("phone_number", "phoneNumber"))


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp_code: str = Field(..., validation_alias=AliasChoices("otp_code", "otpCode", "otp"))
    new_password: str = Field(..., validation_alias=AliasChoices("new_password", "newPassword"))


# ============================================================================
# AMC Contract Schemas
# ============================================================================

class ContractSubmit(CamelModel):
    """
    Deliberately lenient: presence and format checks happen in the submission
    service so that failures come back in a fixed order with specific codes.
    """
    company_name: Optional[str] = Field(None, alias="companyName")
    contact_person: Optional[str] = Field(None, alias="contactPerson")
    contact_phone: Optional[str] = Field(None, alias="contactPhone")
    contact_email: Optional[str] = Field(None, alias="contactEmail")
    address: Optional[str] = None
    message: Optional[str] = None
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    services: Optional[Any] = None


class SubServiceSelection(BaseModel):
    name: str
    items: Optional[int] = None
    rate: Optional[float] = None
    quantity: Optional[int] = None


class QuestionAnswerInput(CamelModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    question_type: Optional[str] = Field(None, alias="questionType")


class CartLineBase(CamelModel):
    requested_date: Optional[str] = None
    message: Optional[str] = None
    number_of_units: Optional[float] = None
    quantity: Optional[float] = None

    @property
    def units(self) -> float:
        return self.number_of_units or self.quantity or 1


class CatalogCartLine(CartLineBase):
    is_custom_service: bool = Field(False, alias="isCustomService")
    service_id: Optional[Union[int, str]] = None
    service_name: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    duration_type: Optional[str] = Field(None, alias="durationType")
    duration: Optional[float] = None
    number_of_persons: Optional[int] = Field(None, alias="numberOfPersons")
    selected_sub_services: List[SubServiceSelection] = Field(default_factory=list, alias="selectedSubServices")
    question_answers: List[QuestionAnswerInput] = Field(default_factory=list, alias="questionAnswers")


class CustomCartLine(CartLineBase):
    is_custom_service: bool = Field(True, alias="isCustomService")
    custom_service_name: Optional[str] = Field(None, alias="customServiceName")
    custom_service_description: Optional[str] = Field(None, alias="customServiceDescription")


CartLine = Union[CatalogCartLine, CustomCartLine]


def parse_cart_line(item: dict) -> CartLine:
    """Pick the cart line variant from its isCustomService tag"""
    if item.get("isCustomService") or item.get("is_custom_service"):
        return CustomCartLine.model_validate(item)
    return CatalogCartLine.model_validate(item)


class ContractStatusUpdate(BaseModel):
    status: Optional[str] = None


class ContractDetailsUpdate(CamelModel):
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    admin_notes: Optional[str] = Field(None, alias="adminNotes")
    total_contract_value: Optional[float] = Field(None, alias="totalContractValue")


class ContractServiceRequestUpdate(CamelModel):
    requested_date: Optional[str] = Field(None, validation_alias=AliasChoices("requested_date", "requestedDate"))
    request_type: Optional[str] = Field(None, validation_alias=AliasChoices("request_type", "requestType"))
    unit_type: Optional[str] = Field(None, validation_alias=AliasChoices("unit_type", "unitType"))
    unit_price: Optional[float] = Field(None, validation_alias=AliasChoices("unit_price", "unitPrice"))
    number_of_units: Optional[float] = Field(None, validation_alias=AliasChoices("number_of_units", "numberOfUnits"))
    status: Optional[str] = None
    admin_notes: Optional[str] = Field(None, validation_alias=AliasChoices("admin_notes", "adminNotes"))


# ============================================================================
# AMC Asset Schemas
# ============================================================================

class LinkedServiceInput(CamelModel):
    service_id: Optional[Union[int, str]] = Field(
        None, validation_alias=AliasChoices("serviceId", "service_id", "service")
    )
    is_custom: bool = Field(False, validation_alias=AliasChoices("isCustom", "is_custom"))
    name: Optional[str] = Field(None, validation_alias=AliasChoices("name", "serviceName", "service_name"))
    number_of_times: Optional[int] = Field(None, validation_alias=AliasChoices("numberOfTimes", "number_of_times"))
    scheduled_dates: Optional[List[str]] = Field(None, validation_alias=AliasChoices("scheduledDates", "scheduled_dates"))


# ============================================================================
# Vendor Schemas
# ============================================================================

class VendorAvailabilityUpdate(CamelModel):
    availability_schedule: Optional[Any] = Field(None, alias="availabilitySchedule")
    unavailable_dates: Optional[Any] = Field(None, alias="unavailableDates")


class WeeklyScheduleUpdate(CamelModel):
    availability_schedule: Optional[Any] = Field(None, alias="availabilitySchedule")


class BlockDatesRequest(CamelModel):
    dates: Optional[Any] = None
    reason: Optional[str] = None


class VendorProfileUpdate(CamelModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    company: Optional[str] = None
    country_code: Optional[str] = Field(None, alias="countryCode")
    mobile_number: Optional[str] = Field(None, alias="mobileNumber")
    covered_city: Optional[str] = Field(None, alias="coveredCity")
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    experience: Optional[int] = None
    service_availability: Optional[str] = Field(None, alias="serviceAvailability")


class VendorKYCUpdate(CamelModel):
    id_type: Optional[str] = Field(None, alias="idType")
    id_number: Optional[str] = Field(None, alias="idNumber")
    document_url: Optional[str] = Field(None, alias="documentUrl")


class VendorBankingUpdate(CamelModel):
    bank_name: Optional[str] = Field(None, alias="bankName")
    branch_name: Optional[str] = Field(None, alias="branchName")
    bank_account_number: Optional[str] = Field(None, alias="bankAccountNumber")
    iban: Optional[str] = None


class VerificationDecision(CamelModel):
    approved: bool
    reason: Optional[str] = None


# ============================================================================
# Email / Contact Schemas
# ============================================================================

class ContactForm(CamelModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class MarketingEmailRequest(BaseModel):
    recipients: Optional[Any] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    title: Optional[str] = None


class TestEmailRequest(CamelModel):
    test_email: Optional[str] = Field(None, alias="testEmail")


# ============================================================================
# Service Request Schemas
# ============================================================================

class AssignVendorRequest(CamelModel):
    vendor_id: int = Field(..., validation_alias=AliasChoices("vendorId", "vendor_id"))


class PaymentLinkRequest(CamelModel):
    amount: Optional[float] = None
    expiry_hours: Optional[int] = Field(None, validation_alias=AliasChoices("expiryHours", "expiry_hours"))


class PaymentResult(CamelModel):
    status: str
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    order_id: Optional[str] = Field(None, alias="orderId")
    amount: Optional[float] = None
    failure_reason: Optional[str] = Field(None, alias="failureReason")
    bank_reference_number: Optional[str] = Field(None, alias="bankReferenceNumber")
