from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey, Float, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


CONTRACT_STATUSES = ["Draft", "Pending", "Active", "Completed", "Cancelled"]
REQUEST_TYPES = ["Quotation", "OnTime", "Scheduled"]
REQUEST_STATUSES = ["Pending", "Quoted", "Assigned", "Accepted", "InProgress", "Completed", "Cancelled"]
TERMINAL_REQUEST_STATUSES = ["Completed", "Cancelled"]
PAYMENT_METHODS = ["Cash On Delivery", "Online Payment"]
PAYMENT_STATUSES = ["Pending", "Success", "Failure", "Cancelled"]
UNIT_TYPES = ["per_unit", "per_hour"]
USER_ROLES = ["user", "vendor", "admin"]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone_number = Column(String, nullable=True, index=True)
    hashed_password = Column(String, nullable=False)
    role = Column(String, default="user")  # user, vendor, admin
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class OTPCode(Base):
    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False, index=True)
    otp_code = Column(String, nullable=False)
    purpose = Column(String, nullable=False, default="password_reset")
    expires_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, default=0)
    max_attempts = Column(Integer, default=3)
    is_verified = Column(Boolean, default=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    services = relationship("Service", back_populates="category")


class Service(Base):
    """Catalog service offered on the marketplace, e.g. AC Cleaning"""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Float, nullable=True)  # price per unit/hour
    unit_type = Column(String, default="per_unit")  # per_unit, per_hour
    thumbnail_uri = Column(String, nullable=True)
    image_uri = Column(String, nullable=True)
    service_icon = Column(String, nullable=True)
    # [{"name": "Deep Clean", "items": 1, "rate": 150.0}]
    sub_services = Column(JSON, default=list)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    category = relationship("Category", back_populates="services")


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)

    # Profile
    vendor_type = Column(String, default="individual")  # corporate, individual
    company = Column(String, nullable=True)  # only if corporate
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    country_code = Column(String, nullable=True)
    mobile_number = Column(String, nullable=True)
    covered_city = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)
    experience = Column(Integer, nullable=True)
    profile_pic = Column(String, nullable=True)
    service_availability = Column(String, default="Full-time")  # Full-time, Part-time

    # KYC
    id_type = Column(String, nullable=True)  # Passport, EmiratesID, NationalID
    id_number = Column(String, nullable=True)
    kyc_document_url = Column(String, nullable=True)
    kyc_status = Column(String, default="not_submitted")  # not_submitted, pending, verified, rejected
    kyc_submitted_at = Column(DateTime, nullable=True)
    kyc_verified_at = Column(DateTime, nullable=True)
    kyc_rejection_reason = Column(Text, nullable=True)

    # Banking
    bank_name = Column(String, nullable=True)
    branch_name = Column(String, nullable=True)
    bank_account_number = Column(String, nullable=True)
    iban = Column(String, nullable=True)
    banking_status = Column(String, default="not_submitted")
    banking_verified_at = Column(DateTime, nullable=True)

    # Availability
    # [{"dayOfWeek": "Mon", "startTime": "09:00", "endTime": "17:00"}]
    availability_schedule = Column(JSON, default=list)
    # [{"date": "2024-05-01", "reason": "Holiday"}]
    unavailable_dates = Column(JSON, default=list)

    approved = Column(Boolean, default=False)  # must be approved by admin
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = relationship("User")
    service = relationship("Service")

    @property
    def name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def phone(self):
        if self.country_code and self.mobile_number:
            return f"{self.country_code}{self.mobile_number}"
        return self.mobile_number


class ContractSequence(Base):
    """Per-day counter backing AMC contract numbers"""
    __tablename__ = "amc_contract_sequences"

    day = Column(String(8), primary_key=True)  # YYYYMMDD (UTC)
    last_number = Column(Integer, nullable=False, default=0)


class AMCContract(Base):
    """
    Annual maintenance contract submitted by a company.
    Each service in the submitted cart becomes a ServiceRequest owned by the contract.
    """
    __tablename__ = "amc_contracts"

    id = Column(Integer, primary_key=True, index=True)
    contract_number = Column(String, unique=True, nullable=False, index=True)  # AMC-YYYYMMDD-NNNN

    # Client information
    company_name = Column(String, nullable=False)
    contact_person = Column(String, nullable=False)
    contact_phone = Column(String, nullable=False, index=True)
    contact_email = Column(String, nullable=False, index=True)
    address = Column(Text, nullable=False)
    message = Column(Text, nullable=True)

    # Linked user (if they have an account)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Contract period
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)

    status = Column(String, default="Pending", index=True)  # Draft, Pending, Active, Completed, Cancelled

    # Set by admin after negotiation
    total_contract_value = Column(Float, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_by_admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])
    service_requests = relationship(
        "ServiceRequest",
        back_populates="amc_contract",
        order_by="ServiceRequest.id",
    )
    assets = relationship("AMCAsset", back_populates="amc_contract", cascade="all, delete-orphan")


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(Integer, primary_key=True, index=True)

    # Requester
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    user_name = Column(String, nullable=False)
    user_phone = Column(String, nullable=False)
    user_email = Column(String, nullable=False, index=True)
    address = Column(Text, nullable=True)

    # Service (null for custom services)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    service_name = Column(String, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    category_name = Column(String, nullable=True)

    is_custom_service = Column(Boolean, default=False)
    custom_service_name = Column(String, nullable=True)
    custom_service_description = Column(Text, nullable=True)

    # Request details
    request_type = Column(String, nullable=False)  # Quotation, OnTime, Scheduled
    requested_date = Column(DateTime, nullable=False)
    message = Column(Text, nullable=True)

    # Pricing (not required for Quotation requests)
    unit_type = Column(String, nullable=True)  # per_unit, per_hour
    unit_price = Column(Float, nullable=True)
    number_of_units = Column(Float, nullable=False, default=1)
    total_price = Column(Float, nullable=True)
    duration_type = Column(String, nullable=True)
    duration = Column(Float, nullable=True)
    number_of_persons = Column(Integer, nullable=True)

    # [{"name", "items", "rate", "quantity"}]
    selected_sub_services = Column(JSON, default=list)
    # [{"question", "answer", "questionType"}]
    question_answers = Column(JSON, default=list)

    status = Column(String, default="Pending", index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    admin_notes = Column(Text, nullable=True)

    # Payment
    payment_method = Column(String, default="Cash On Delivery")
    payment_status = Column(String, default="Pending")
    # {"transactionId", "orderId", "amount", "currency", "paymentDate", "failureReason", "bankReferenceNumber"}
    payment_details = Column(JSON, nullable=True)

    # Admin generated payment link
    payment_link_token = Column(String, unique=True, nullable=True, index=True)
    payment_link_url = Column(String, nullable=True)
    payment_link_generated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    payment_link_generated_at = Column(DateTime, nullable=True)
    payment_link_expires_at = Column(DateTime, nullable=True)
    payment_link_is_expired = Column(Boolean, default=False)
    payment_link_is_used = Column(Boolean, default=False)

    amc_contract_id = Column(Integer, ForeignKey("amc_contracts.id"), nullable=True, index=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    service = relationship("Service")
    vendor = relationship("Vendor")
    amc_contract = relationship("AMCContract", back_populates="service_requests")


class AMCAsset(Base):
    """Physical asset covered by an AMC contract (e.g. an AC unit), with photos"""
    __tablename__ = "amc_assets"

    id = Column(Integer, primary_key=True, index=True)
    amc_contract_id = Column(Integer, ForeignKey("amc_contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    # [{"url": ..., "filename": ...}]
    images = Column(JSON, default=list)
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    amc_contract = relationship("AMCContract", back_populates="assets")
    linked_services = relationship(
        "AMCAssetServiceLink",
        back_populates="asset",
        cascade="all, delete-orphan",
        order_by="AMCAssetServiceLink.sort_order",
    )


class AMCAssetServiceLink(Base):
    """Catalog (or custom) service scheduled against an asset"""
    __tablename__ = "amc_asset_service_links"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("amc_assets.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    is_custom = Column(Boolean, default=False)
    service_name = Column(String, nullable=False)
    number_of_times = Column(Integer, default=1)
    scheduled_dates = Column(JSON, default=list)  # ISO date strings
    sort_order = Column(Integer, default=0)

    asset = relationship("AMCAsset", back_populates="linked_services")
    service = relationship("Service")
