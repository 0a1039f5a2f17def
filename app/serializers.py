"""
Response shapes. Contracts, assets and vendors use the camelCase keys of the
public API; service request fields keep their snake_case names.
"""
from typing import Any, Dict, Optional

from app.models import AMCAsset, AMCContract, ServiceRequest, Service, User, Vendor


def service_ref(service: Optional[Service]) -> Optional[Dict[str, Any]]:
    if service is None:
        return None
    return {
        "id": service.id,
        "name": service.name,
        "thumbnailUri": service.thumbnail_uri,
        "serviceIcon": service.service_icon,
        "imageUri": service.image_uri,
    }


def vendor_ref(vendor: Optional[Vendor]) -> Optional[Dict[str, Any]]:
    if vendor is None:
        return None
    return {
        "id": vendor.id,
        "name": vendor.name,
        "phone": vendor.phone,
        "email": vendor.email,
    }


def service_request_summary(sr: ServiceRequest) -> Dict[str, Any]:
    return {
        "id": sr.id,
        "service_id": sr.service_id,
        "service_name": sr.service_name,
        "category_name": sr.category_name,
        "request_type": sr.request_type,
        "status": sr.status,
        "requested_date": sr.requested_date,
        "number_of_units": sr.number_of_units,
        "total_price": sr.total_price,
        "durationType": sr.duration_type,
        "duration": sr.duration,
        "numberOfPersons": sr.number_of_persons,
        "selectedSubServices": sr.selected_sub_services or [],
        "isCustomService": bool(sr.is_custom_service),
    }


def service_request_detail(sr: ServiceRequest) -> Dict[str, Any]:
    data = service_request_summary(sr)
    data.update({
        "user_name": sr.user_name,
        "user_phone": sr.user_phone,
        "user_email": sr.user_email,
        "address": sr.address,
        "category_id": sr.category_id,
        "message": sr.message,
        "unit_type": sr.unit_type,
        "unit_price": sr.unit_price,
        "questionAnswers": sr.question_answers or [],
        "customServiceName": sr.custom_service_name,
        "customServiceDescription": sr.custom_service_description,
        "paymentMethod": sr.payment_method,
        "paymentStatus": sr.payment_status,
        "paymentDetails": sr.payment_details,
        "adminNotes": sr.admin_notes,
        "amcContract": sr.amc_contract_id,
        "service": service_ref(sr.service),
        "vendor": vendor_ref(sr.vendor),
        "createdAt": sr.created_at,
        "updatedAt": sr.updated_at,
    })
    return data


def service_request_notification(sr: ServiceRequest) -> Dict[str, Any]:
    """Plain dict handed to email templates (safe to use after the session closes)"""
    return {
        "id": sr.id,
        "service_name": sr.service_name,
        "request_type": sr.request_type,
        "requested_date": sr.requested_date,
        "user_name": sr.user_name,
        "user_email": sr.user_email,
        "user_phone": sr.user_phone,
        "address": sr.address,
        "number_of_units": sr.number_of_units,
        "total_price": sr.total_price,
    }


def contract_to_dict(contract: AMCContract, detail: bool = False) -> Dict[str, Any]:
    render = service_request_detail if detail else service_request_summary
    return {
        "id": contract.id,
        "contractNumber": contract.contract_number,
        "companyName": contract.company_name,
        "contactPerson": contract.contact_person,
        "contactPhone": contract.contact_phone,
        "contactEmail": contract.contact_email,
        "address": contract.address,
        "message": contract.message,
        "user": contract.user_id,
        "startDate": contract.start_date,
        "endDate": contract.end_date,
        "status": contract.status,
        "totalContractValue": contract.total_contract_value,
        "adminNotes": contract.admin_notes,
        "serviceRequests": [render(sr) for sr in contract.service_requests],
        "createdAt": contract.created_at,
        "updatedAt": contract.updated_at,
    }


def asset_to_dict(asset: AMCAsset) -> Dict[str, Any]:
    return {
        "id": asset.id,
        "amcContract": asset.amc_contract_id,
        "name": asset.name,
        "description": asset.description,
        "images": list(asset.images or []),
        "linkedServices": [
            {
                "id": link.id,
                "service": service_ref(link.service) if link.service_id else None,
                "serviceId": link.service_id,
                "isCustom": bool(link.is_custom),
                "serviceName": link.service_name,
                "numberOfTimes": link.number_of_times,
                "scheduledDates": list(link.scheduled_dates or []),
            }
            for link in asset.linked_services
        ],
        "createdAt": asset.created_at,
        "updatedAt": asset.updated_at,
    }


def vendor_availability(vendor: Vendor) -> Dict[str, Any]:
    return {
        "id": vendor.id,
        "firstName": vendor.first_name,
        "lastName": vendor.last_name,
        "email": vendor.email,
        "availabilitySchedule": vendor.availability_schedule or [],
        "unavailableDates": vendor.unavailable_dates or [],
    }


def vendor_profile(vendor: Vendor) -> Dict[str, Any]:
    return {
        "id": vendor.id,
        "type": vendor.vendor_type,
        "company": vendor.company,
        "firstName": vendor.first_name,
        "lastName": vendor.last_name,
        "email": vendor.email,
        "countryCode": vendor.country_code,
        "mobileNumber": vendor.mobile_number,
        "coveredCity": vendor.covered_city,
        "address": vendor.address,
        "city": vendor.city,
        "country": vendor.country,
        "experience": vendor.experience,
        "profilePic": vendor.profile_pic,
        "serviceAvailability": vendor.service_availability,
        "serviceId": vendor.service_id,
        "approved": bool(vendor.approved),
        "isActive": bool(vendor.is_active),
    }


def vendor_kyc(vendor: Vendor) -> Dict[str, Any]:
    return {
        "idType": vendor.id_type,
        "idNumber": vendor.id_number,
        "documentUrl": vendor.kyc_document_url,
        "status": vendor.kyc_status,
        "submittedAt": vendor.kyc_submitted_at,
        "verifiedAt": vendor.kyc_verified_at,
        "rejectionReason": vendor.kyc_rejection_reason,
    }


def _mask(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return "*" * max(len(value) - 4, 0) + value[-4:]


def vendor_banking(vendor: Vendor) -> Dict[str, Any]:
    return {
        "bankName": vendor.bank_name,
        "branchName": vendor.branch_name,
        "bankAccountNumber": _mask(vendor.bank_account_number),
        "iban": _mask(vendor.iban),
        "status": vendor.banking_status,
        "verifiedAt": vendor.banking_verified_at,
    }


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phoneNumber": user.phone_number,
        "role": user.role,
    }
