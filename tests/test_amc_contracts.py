import re
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.models import AMCContract, ContractSequence, ServiceRequest
from app.schemas import SubServiceSelection
from app.services import amc_contracts as contract_service
from main import app
from tests.conftest import bearer


def submit(client, payload, headers=None):
    return client.post("/api/amc-contracts", json=payload, headers=headers or {})


# ============================================================================
# Submission
# ============================================================================

class TestSubmitContract:
    def test_creates_contract_with_one_request_per_cart_line(self, client, db, contract_payload, catalog):
        response = submit(client, contract_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        contract = body["content"]["amcContract"]
        assert re.match(r"^AMC-\d{8}-0001$", contract["contractNumber"])
        assert contract["status"] == "Pending"
        assert len(contract["serviceRequests"]) == 2

        stored = db.query(AMCContract).one()
        requests = db.query(ServiceRequest).order_by(ServiceRequest.id).all()
        assert len(requests) == 2
        assert {sr.id for sr in requests} == {sr["id"] for sr in contract["serviceRequests"]}
        assert all(sr.amc_contract_id == stored.id for sr in requests)

        first = requests[0]
        assert first.service_id == catalog["ac"].id
        assert first.service_name == "AC Cleaning"
        assert first.category_name == "Cleaning"
        assert first.request_type == "Quotation"
        assert first.status == "Pending"
        assert first.number_of_units == 4
        assert first.payment_method == "Cash On Delivery"
        assert first.user_email == "layla@acme.test"
        assert first.requested_date == datetime(2024, 3, 1)
        assert requests[1].number_of_units == 1

    def test_end_date_defaults_to_one_year_after_start(self, client, db, contract_payload):
        response = submit(client, contract_payload(startDate="2024-03-01"))

        assert response.status_code == 201
        assert response.json()["content"]["amcContract"]["endDate"].startswith("2025-03-01")
        assert db.query(AMCContract).one().end_date == datetime(2025, 3, 1)

    def test_explicit_end_date_is_kept(self, client, db, contract_payload):
        submit(client, contract_payload(startDate="2024-03-01", endDate="2024-09-30"))
        assert db.query(AMCContract).one().end_date == datetime(2024, 9, 30)

    def test_no_dates_leaves_both_empty(self, client, db, contract_payload):
        payload = contract_payload()
        del payload["startDate"]
        submit(client, payload)

        contract = db.query(AMCContract).one()
        assert contract.start_date is None
        assert contract.end_date is None

    def test_email_is_normalized_and_caller_is_linked(self, client, db, contract_payload, customer, customer_headers):
        response = submit(client, contract_payload(contactEmail="  Layla@Acme.TEST "), customer_headers)

        assert response.status_code == 201
        contract = db.query(AMCContract).one()
        assert contract.contact_email == "layla@acme.test"
        assert contract.user_id == customer.id
        assert all(sr.user_id == customer.id for sr in contract.service_requests)

    def test_invalid_token_submits_anonymously(self, client, db, contract_payload):
        response = submit(client, contract_payload(), {"Authorization": "Bearer not-a-token"})

        assert response.status_code == 201
        assert db.query(AMCContract).one().user_id is None

    def test_custom_service_line(self, client, db, contract_payload):
        payload = contract_payload(services=[{
            "isCustomService": True,
            "customServiceName": "  Rooftop Garden Care ",
            "customServiceDescription": "Weekly watering of rooftop planters",
            "quantity": 2,
        }])
        response = submit(client, payload)

        assert response.status_code == 201
        sr = db.query(ServiceRequest).one()
        assert sr.service_id is None
        assert sr.is_custom_service is True
        assert sr.service_name == "Rooftop Garden Care"
        assert sr.custom_service_name == "Rooftop Garden Care"
        assert sr.category_name == "Custom Service"
        assert sr.message == "Weekly watering of rooftop planters"
        assert sr.number_of_units == 2

    def test_duplicate_service_ids_are_accepted(self, client, db, contract_payload, catalog):
        payload = contract_payload(services=[
            {"service_id": catalog["ac"].id},
            {"service_id": str(catalog["ac"].id)},
        ])
        response = submit(client, payload)

        assert response.status_code == 201
        assert db.query(ServiceRequest).count() == 2

    def test_question_answers_drop_blank_answers(self, client, db, contract_payload, catalog):
        payload = contract_payload(services=[{
            "service_id": catalog["deep"].id,
            "durationType": "hours",
            "duration": 3,
            "numberOfPersons": 2,
            "questionAnswers": [
                {"question": "Pets at home?", "answer": " No ", "questionType": "radio"},
                {"question": "Parking available?", "answer": "   "},
            ],
        }])
        submit(client, payload)

        sr = db.query(ServiceRequest).one()
        assert sr.duration_type == "hours"
        assert sr.duration == 3
        assert sr.number_of_persons == 2
        assert sr.question_answers == [{"question": "Pets at home?", "answer": "No", "questionType": "radio"}]

    def test_admin_is_notified_after_commit(self, client, outbox, contract_payload):
        response = submit(client, contract_payload())
        number = response.json()["content"]["amcContract"]["contractNumber"]

        notices = outbox.to("admin@marketplace.test")
        assert len(notices) == 1
        assert notices[0]["subject"] == f"New Service Request: AMC Contract: {number} (2 services)"

    def test_notification_failure_does_not_fail_submission(self, client, db, outbox, contract_payload):
        outbox.rejected.add("admin@marketplace.test")

        response = submit(client, contract_payload())

        assert response.status_code == 201
        assert db.query(AMCContract).count() == 1
        assert outbox.messages == []


class TestSubmissionValidation:
    def test_missing_fields_reported_before_invalid_services(self, client, db, contract_payload):
        payload = contract_payload(companyName="", services=[{"service_id": 987654}])
        response = submit(client, payload)

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_REQUIRED_FIELDS"
        assert "companyName" in response.json()["message"]
        assert db.query(AMCContract).count() == 0

    @pytest.mark.parametrize("field", ["companyName", "contactPerson", "contactPhone", "contactEmail", "address"])
    def test_each_required_field(self, client, contract_payload, field):
        payload = contract_payload()
        del payload[field]
        response = submit(client, payload)

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_REQUIRED_FIELDS"

    def test_invalid_email(self, client, contract_payload):
        response = submit(client, contract_payload(contactEmail="layla-at-acme"))
        assert response.json()["code"] == "INVALID_EMAIL"

    @pytest.mark.parametrize("services", [[], None, "AC Cleaning"])
    def test_empty_cart(self, client, contract_payload, services):
        response = submit(client, contract_payload(services=services))
        assert response.status_code == 400
        assert response.json()["code"] == "NO_SERVICES"

    def test_custom_service_requires_name(self, client, contract_payload, catalog):
        payload = contract_payload(services=[
            {"service_id": 987654},
            {"isCustomService": True, "customServiceName": "  "},
        ])
        response = submit(client, payload)

        assert response.json()["code"] == "INVALID_CUSTOM_SERVICE"

    def test_inactive_and_unknown_services_are_listed(self, client, db, contract_payload, catalog):
        retired_id = catalog["retired"].id
        payload = contract_payload(services=[
            {"service_id": catalog["ac"].id},
            {"service_id": retired_id},
            {"service_id": "not-an-id"},
        ])
        response = submit(client, payload)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_SERVICES"
        assert body["content"]["invalidServiceIds"] == [retired_id, "not-an-id"]
        assert db.query(AMCContract).count() == 0

    def test_malformed_cart_line(self, client, contract_payload):
        response = submit(client, contract_payload(services=["AC Cleaning"]))
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_invalid_start_date(self, client, db, contract_payload):
        response = submit(client, contract_payload(startDate="someday"))

        assert response.json()["code"] == "INVALID_DATE"
        assert db.query(AMCContract).count() == 0


class TestAtomicity:
    def test_failure_mid_submission_persists_nothing(self, client, db, contract_payload, monkeypatch):
        original = contract_service.build_service_request
        calls = {"count": 0}

        def fail_on_second(*args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise RuntimeError("disk full")
            return original(*args, **kwargs)

        monkeypatch.setattr(contract_service, "build_service_request", fail_on_second)

        with TestClient(app, raise_server_exceptions=False) as failing_client:
            response = failing_client.post("/api/amc-contracts", json=contract_payload())

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_SERVER_ERROR"
        assert db.query(AMCContract).count() == 0
        assert db.query(ServiceRequest).count() == 0
        assert db.query(ContractSequence).count() == 0

        monkeypatch.setattr(contract_service, "build_service_request", original)
        retry = submit(client, contract_payload())
        assert retry.json()["content"]["amcContract"]["contractNumber"].endswith("-0001")


class TestContractNumbering:
    def test_numbers_are_sequential_within_a_day(self, client, contract_payload):
        numbers = [
            submit(client, contract_payload()).json()["content"]["amcContract"]["contractNumber"]
            for _ in range(3)
        ]
        assert [n[-4:] for n in numbers] == ["0001", "0002", "0003"]
        assert len({n[:12] for n in numbers}) == 1

    def test_each_day_has_its_own_sequence(self, db):
        first = contract_service.next_contract_number(db, datetime(2024, 5, 1, 23, 59))
        second = contract_service.next_contract_number(db, datetime(2024, 5, 1, 8, 0))
        next_day = contract_service.next_contract_number(db, datetime(2024, 5, 2, 0, 1))
        db.commit()

        assert first == "AMC-20240501-0001"
        assert second == "AMC-20240501-0002"
        assert next_day == "AMC-20240502-0001"

    def test_numbers_are_not_reused_after_a_contract_is_removed(self, client, db, contract_payload):
        first = submit(client, contract_payload()).json()["content"]["amcContract"]
        db.query(ServiceRequest).delete()
        db.query(AMCContract).delete()
        db.commit()

        second = submit(client, contract_payload()).json()["content"]["amcContract"]
        assert first["contractNumber"] != second["contractNumber"]
        assert second["contractNumber"].endswith("-0002")


class TestHelpers:
    def test_default_end_date(self):
        assert contract_service.default_end_date(datetime(2024, 3, 1), None) == datetime(2025, 3, 1)
        assert contract_service.default_end_date(None, None) is None
        assert contract_service.default_end_date(datetime(2024, 3, 1), datetime(2024, 6, 1)) == datetime(2024, 6, 1)

    def test_default_end_date_from_leap_day(self):
        assert contract_service.default_end_date(datetime(2024, 2, 29), None) == datetime(2025, 2, 28)

    def test_reconcile_sub_services(self):
        catalog = [
            {"name": "Split Unit", "items": 1, "rate": 150.0},
            {"name": "Duct Cleaning", "items": 2, "rate": 300.0},
        ]
        selected = [
            SubServiceSelection(name="  split UNIT ", items=9, rate=1.0, quantity=3),
            SubServiceSelection(name="Gutter Flush", items=2, rate=40.0),
        ]

        assert contract_service.reconcile_sub_services(selected, catalog) == [
            {"name": "Split Unit", "items": 1, "rate": 150.0, "quantity": 3},
            {"name": "Gutter Flush", "items": 2, "rate": 40.0, "quantity": 1},
        ]

    def test_reconciled_sub_services_are_stored(self, client, db, contract_payload, catalog):
        payload = contract_payload(services=[{
            "service_id": catalog["ac"].id,
            "selectedSubServices": [{"name": "duct cleaning", "rate": 5, "quantity": 2}],
        }])
        submit(client, payload)

        assert db.query(ServiceRequest).one().selected_sub_services == [
            {"name": "Duct Cleaning", "items": 2, "rate": 300.0, "quantity": 2}
        ]


# ============================================================================
# Queries
# ============================================================================

class TestContractQueries:
    def test_get_contract_populates_services(self, client, contract_payload, catalog):
        contract_id = submit(client, contract_payload()).json()["content"]["amcContract"]["id"]

        response = client.get(f"/api/amc-contracts/{contract_id}")

        assert response.status_code == 200
        contract = response.json()["content"]["contract"]
        first = contract["serviceRequests"][0]
        assert first["service"] == {
            "id": catalog["ac"].id,
            "name": "AC Cleaning",
            "thumbnailUri": "https://cdn.test/ac-thumb.png",
            "serviceIcon": "https://cdn.test/ac-icon.png",
            "imageUri": "https://cdn.test/ac.png",
        }
        assert first["vendor"] is None

    def test_repeated_reads_are_identical(self, client, contract_payload):
        contract_id = submit(client, contract_payload()).json()["content"]["amcContract"]["id"]

        first = client.get(f"/api/amc-contracts/{contract_id}").json()
        second = client.get(f"/api/amc-contracts/{contract_id}").json()
        assert first == second

    def test_malformed_and_unknown_ids(self, client):
        assert client.get("/api/amc-contracts/abc").json()["code"] == "INVALID_ID"
        for raw in ["%C2%B2", "99999999999999999999999", str(2 ** 31)]:
            response = client.get(f"/api/amc-contracts/{raw}")
            assert response.status_code == 400
            assert response.json()["code"] == "INVALID_ID"
        missing = client.get("/api/amc-contracts/999")
        assert missing.status_code == 404
        assert missing.json()["code"] == "NOT_FOUND"

    def test_my_contracts_match_by_email(self, client, contract_payload, customer_headers):
        submit(client, contract_payload())
        submit(client, contract_payload(contactEmail="someone@else.test", contactPhone="+971555000111"))

        response = client.get("/api/amc-contracts/my", headers=customer_headers)

        assert response.status_code == 200
        content = response.json()["content"]
        assert len(content["contracts"]) == 1
        assert content["pagination"]["totalCount"] == 1
        assert content["pagination"]["limit"] == 10

    def test_my_contracts_match_by_profile_phone(self, client, contract_payload, customer_headers):
        submit(client, contract_payload(contactEmail="facilities@acme.test"))

        response = client.get("/api/amc-contracts/my", headers=customer_headers)
        assert len(response.json()["content"]["contracts"]) == 1

    def test_my_contracts_requires_login(self, client):
        response = client.get("/api/amc-contracts/my")
        assert response.status_code == 401
        assert response.json()["success"] is False


class TestAdminListing:
    def test_requires_admin(self, client, customer_headers):
        response = client.get("/api/amc-contracts", headers=customer_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "ADMIN_REQUIRED"

    def test_newest_first_with_pagination_boundary(self, client, admin_headers, contract_payload):
        for name in ["Alpha Corp", "Beta Corp", "Gamma Corp"]:
            submit(client, contract_payload(companyName=name))

        page_one = client.get("/api/amc-contracts?page=1&limit=2", headers=admin_headers).json()["content"]
        page_two = client.get("/api/amc-contracts?page=2&limit=2", headers=admin_headers).json()["content"]
        page_three = client.get("/api/amc-contracts?page=3&limit=2", headers=admin_headers).json()["content"]

        assert [c["companyName"] for c in page_one["contracts"]] == ["Gamma Corp", "Beta Corp"]
        assert [c["companyName"] for c in page_two["contracts"]] == ["Alpha Corp"]
        assert page_two["pagination"] == {
            "currentPage": 2,
            "totalPages": 2,
            "totalCount": 3,
            "limit": 2,
            "hasNextPage": False,
            "hasPrevPage": True,
        }
        assert page_three["contracts"] == []

    def test_exactly_one_full_page(self, client, admin_headers, contract_payload):
        for name in ["Alpha Corp", "Beta Corp"]:
            submit(client, contract_payload(companyName=name))

        content = client.get("/api/amc-contracts?page=1&limit=2", headers=admin_headers).json()["content"]

        assert len(content["contracts"]) == 2
        assert content["pagination"]["totalPages"] == 1
        assert content["pagination"]["hasNextPage"] is False

    def test_search_and_status_filter(self, client, db, admin_headers, contract_payload):
        submit(client, contract_payload(companyName="Harbor Logistics"))
        submit(client, contract_payload(companyName="Desert Bloom Hotels"))
        db.query(AMCContract).filter(AMCContract.company_name == "Harbor Logistics").update({"status": "Active"})
        db.commit()

        by_search = client.get("/api/amc-contracts?search=bloom", headers=admin_headers).json()["content"]
        by_status = client.get("/api/amc-contracts?status=Active", headers=admin_headers).json()["content"]

        assert [c["companyName"] for c in by_search["contracts"]] == ["Desert Bloom Hotels"]
        assert [c["companyName"] for c in by_status["contracts"]] == ["Harbor Logistics"]

    def test_search_wildcards_match_literally(self, client, admin_headers, contract_payload):
        submit(client, contract_payload(companyName="Alpha Corp"))
        submit(client, contract_payload(companyName="Beta 100% Corp"))

        def names(term):
            content = client.get("/api/amc-contracts", params={"search": term}, headers=admin_headers).json()["content"]
            return [c["companyName"] for c in content["contracts"]]

        assert names("_") == []
        assert names("100%") == ["Beta 100% Corp"]
        assert names("%") == ["Beta 100% Corp"]

    def test_default_page_size(self, client, admin_headers):
        response = client.get("/api/amc-contracts?page=zero&limit=-5", headers=admin_headers)
        assert response.json()["content"]["pagination"]["limit"] == 20
        assert response.json()["content"]["pagination"]["currentPage"] == 1


# ============================================================================
# Admin updates
# ============================================================================

class TestStatusUpdate:
    def test_cancel_cascades_to_open_requests(self, client, db, admin_headers, contract_payload, catalog):
        payload = contract_payload(services=[
            {"service_id": catalog["ac"].id},
            {"service_id": catalog["deep"].id},
            {"isCustomService": True, "customServiceName": "Pool Cleaning"},
        ])
        contract_id = submit(client, payload).json()["content"]["amcContract"]["id"]
        completed, assigned, pending = db.query(ServiceRequest).order_by(ServiceRequest.id).all()
        completed.status = "Completed"
        assigned.status = "Assigned"
        db.commit()

        response = client.put(f"/api/amc-contracts/{contract_id}/status", json={"status": "Cancelled"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["content"]["contract"]["status"] == "Cancelled"
        db.expire_all()
        statuses = [sr.status for sr in db.query(ServiceRequest).order_by(ServiceRequest.id)]
        assert statuses == ["Completed", "Cancelled", "Cancelled"]

    def test_other_statuses_leave_requests_alone(self, client, db, admin_headers, contract_payload):
        contract_id = submit(client, contract_payload()).json()["content"]["amcContract"]["id"]

        client.put(f"/api/amc-contracts/{contract_id}/status", json={"status": "Active"}, headers=admin_headers)

        db.expire_all()
        assert {sr.status for sr in db.query(ServiceRequest)} == {"Pending"}

    def test_invalid_status(self, client, admin_headers, contract_payload):
        contract_id = submit(client, contract_payload()).json()["content"]["amcContract"]["id"]

        response = client.put(f"/api/amc-contracts/{contract_id}/status", json={"status": "Archived"}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATUS"

    def test_unknown_contract(self, client, admin_headers):
        response = client.put("/api/amc-contracts/4242/status", json={"status": "Active"}, headers=admin_headers)
        assert response.status_code == 404


class TestDetailsUpdate:
    def test_partial_update(self, client, db, admin_headers, contract_payload):
        contract_id = submit(client, contract_payload()).json()["content"]["amcContract"]["id"]

        response = client.put(
            f"/api/amc-contracts/{contract_id}",
            json={"adminNotes": "Quarterly visits agreed", "totalContractValue": 18500},
            headers=admin_headers,
        )

        assert response.status_code == 200
        contract = response.json()["content"]["contract"]
        assert contract["adminNotes"] == "Quarterly visits agreed"
        assert contract["totalContractValue"] == 18500
        assert contract["startDate"].startswith("2024-03-01")

    def test_end_date_rederived_when_cleared(self, client, admin_headers, contract_payload):
        payload = contract_payload()
        del payload["startDate"]
        contract_id = submit(client, payload).json()["content"]["amcContract"]["id"]

        response = client.put(
            f"/api/amc-contracts/{contract_id}",
            json={"startDate": "2024-07-15", "endDate": None},
            headers=admin_headers,
        )

        assert response.json()["content"]["contract"]["endDate"].startswith("2025-07-15")


class TestContractServiceRequestUpdate:
    def test_schedule_and_price_a_request(self, client, db, admin_headers, contract_payload):
        contract = submit(client, contract_payload()).json()["content"]["amcContract"]
        sr_id = contract["serviceRequests"][0]["id"]

        response = client.put(
            f"/api/amc-contracts/{contract['id']}/service-requests/{sr_id}",
            json={"requestType": "Scheduled", "requestedDate": "2024-04-10T09:00:00Z", "unitType": "per_unit", "unitPrice": 125},
            headers=admin_headers,
        )

        assert response.status_code == 200
        updated = response.json()["content"]["serviceRequest"]
        assert updated["request_type"] == "Scheduled"
        assert updated["total_price"] == 500
        assert updated["requested_date"].startswith("2024-04-10T09:00")

    def test_pricing_required_outside_quotation(self, client, admin_headers, contract_payload):
        contract = submit(client, contract_payload()).json()["content"]["amcContract"]
        sr_id = contract["serviceRequests"][0]["id"]

        response = client.put(
            f"/api/amc-contracts/{contract['id']}/service-requests/{sr_id}",
            json={"requestType": "OnTime"},
            headers=admin_headers,
        )

        assert response.json()["code"] == "PRICING_REQUIRED"

    def test_request_must_belong_to_contract(self, client, admin_headers, contract_payload):
        first = submit(client, contract_payload()).json()["content"]["amcContract"]
        second = submit(client, contract_payload()).json()["content"]["amcContract"]

        response = client.put(
            f"/api/amc-contracts/{first['id']}/service-requests/{second['serviceRequests'][0]['id']}",
            json={"adminNotes": "x"},
            headers=admin_headers,
        )

        assert response.status_code == 404
        assert response.json()["code"] == "SERVICE_REQUEST_NOT_FOUND"


def test_vendor_token_cannot_list_contracts(client, vendor_user):
    response = client.get("/api/amc-contracts", headers=bearer(vendor_user))
    assert response.status_code == 403
