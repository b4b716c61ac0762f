"""
API tests for benefit flows endpoints.

These tests cover:
- Start flow (201 with CSRF token)
- CSRF enforcement on form submissions
- Redirect status codes (302 for GET, 303 for POST)
- Unknown families, languages and steps
- Flow id in the path and in the query string
- Adding, saving and removing children
"""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from portal.core.config import settings
from portal.core.session import get_session
from portal.modules.benefit_flows.keys import derive_key
from portal.modules.benefit_flows.router import router

PREFIX = "/api/v1"


@pytest.fixture
def app(session, mock_submitter):
    """Create an app that shares one in-memory session across requests."""
    app = FastAPI()
    app.include_router(router, prefix=PREFIX)
    app.dependency_overrides[get_session] = lambda: session
    app.state.application_submitter = mock_submitter
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def start(client, family="apply", lang="en"):
    response = client.post(f"{PREFIX}/{lang}/flows/{family}")
    assert response.status_code == 201
    body = response.json()
    return body, {settings.csrf_header_name: body["csrf_token"]}


class TestStartFlow:
    def test_start_returns_first_step(self, client, session):
        body, _headers = start(client)

        assert body["context"] == "intake"
        assert body["next_url"] == f"{PREFIX}/en/flows/apply/{body['id']}/steps/type-of-application"
        assert body["csrf_token"]

    def test_csrf_token_is_stable_within_a_session(self, client):
        first, _ = start(client)
        second, _ = start(client)

        assert first["csrf_token"] == second["csrf_token"]
        assert first["id"] != second["id"]

    def test_unknown_family_returns_404(self, client):
        response = client.post(f"{PREFIX}/en/flows/status-check")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "FLOW_NOT_FOUND"

    def test_unknown_language_returns_404(self, client):
        response = client.post(f"{PREFIX}/de/flows/apply")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "LANGUAGE_NOT_FOUND"


class TestSteps:
    def test_load_first_step(self, client):
        body, _ = start(client)

        response = client.get(body["next_url"])

        assert response.status_code == 200
        data = response.json()
        assert data["step"] == "type-of-application"
        assert data["variant"] == "apply-intake-entry"
        assert data["state"]["id"] == body["id"]
        assert data["state"]["editMode"] is False

    def test_skipping_ahead_redirects_with_302(self, client):
        body, _ = start(client)
        base = f"{PREFIX}/en/flows/apply/{body['id']}"

        response = client.get(f"{base}/steps/address", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == f"{base}/steps/type-of-application"

    def test_save_step_redirects_with_303(self, client, session):
        body, headers = start(client)
        base = f"{PREFIX}/en/flows/apply/{body['id']}"

        response = client.post(
            f"{base}/steps/type-of-application",
            json={"typeOfApplication": "adult"},
            headers=headers,
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == f"{base}/steps/terms-and-conditions"

    def test_save_without_csrf_token_is_forbidden(self, client):
        body, _ = start(client)

        response = client.post(
            f"{PREFIX}/en/flows/apply/{body['id']}/steps/type-of-application",
            json={"typeOfApplication": "adult"},
            follow_redirects=False,
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "INVALID_CSRF_TOKEN"

    def test_save_with_wrong_csrf_token_is_forbidden(self, client):
        body, _ = start(client)

        response = client.post(
            f"{PREFIX}/en/flows/apply/{body['id']}/steps/type-of-application",
            json={"typeOfApplication": "adult"},
            headers={settings.csrf_header_name: "not-the-token"},
            follow_redirects=False,
        )

        assert response.status_code == 403

    def test_fields_of_another_step_return_422(self, client):
        body, headers = start(client)

        response = client.post(
            f"{PREFIX}/en/flows/apply/{body['id']}/steps/type-of-application",
            json={"typeOfApplication": "adult", "maritalStatus": "single"},
            headers=headers,
            follow_redirects=False,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "INVALID_STEP_DATA"

    def test_unknown_step_returns_404(self, client):
        body, _ = start(client)

        response = client.get(f"{PREFIX}/en/flows/apply/{body['id']}/steps/favourite-colour")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "STEP_NOT_FOUND"

    def test_unknown_flow_redirects_to_recovery_page(self, client):
        response = client.get(
            f"{PREFIX}/fr/flows/apply/22222222-2222-2222-2222-222222222222/steps/type-of-application",
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == settings.apply_url_fr

    def test_protected_apply_redirects_to_its_own_page(self, client):
        response = client.get(
            f"{PREFIX}/en/flows/protected-apply/22222222-2222-2222-2222-222222222222"
            "/steps/type-of-application",
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == settings.protected_apply_url_en
        assert response.headers["location"] != settings.apply_url_en


class TestQueryFamily:
    """Renew flows carry the flow id in the query string."""

    def test_steps_use_query_id(self, client):
        body, headers = start(client, family="renew")
        assert body["context"] == "renewal"
        assert body["next_url"].endswith(f"/renew/steps/type-of-application?id={body['id']}")

        response = client.post(
            f"{PREFIX}/en/flows/renew/steps/type-of-application",
            params={"id": body["id"]},
            json={"typeOfApplication": "adult"},
            headers=headers,
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == (
            f"{PREFIX}/en/flows/renew/steps/terms-and-conditions?id={body['id']}"
        )

    def test_missing_query_id_redirects(self, client):
        response = client.get(
            f"{PREFIX}/en/flows/renew/steps/type-of-application", follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == settings.apply_url_en


class TestReviewSubmitExit:
    def test_incomplete_review_redirects(self, client):
        body, _ = start(client)

        response = client.get(f"{PREFIX}/en/flows/apply/{body['id']}/review", follow_redirects=False)

        assert response.status_code == 302

    def test_submit_without_submitter_returns_503(self, app, client):
        del app.state.application_submitter
        body, headers = start(client)

        response = client.post(f"{PREFIX}/en/flows/apply/{body['id']}/submit", headers=headers)

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "SUBMISSION_UNAVAILABLE"

    def test_submit_incomplete_flow_redirects(self, client, mock_submitter):
        body, headers = start(client)

        response = client.post(
            f"{PREFIX}/en/flows/apply/{body['id']}/submit",
            headers=headers,
            follow_redirects=False,
        )

        assert response.status_code == 303
        mock_submitter.submit.assert_not_awaited()

    def test_exit_clears_flow(self, client, session):
        body, headers = start(client)

        response = client.post(
            f"{PREFIX}/en/flows/apply/{body['id']}/exit",
            headers=headers,
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == settings.apply_url_en
        assert asyncio.run(session.has(derive_key("apply", body["id"]))) is False


class TestFullApplication:
    """Walk an adult application from start to submission over HTTP."""

    def test_adult_application(self, client, session, mock_submitter, adult_steps):
        body, headers = start(client)
        base = f"{PREFIX}/en/flows/apply/{body['id']}"

        for route_id, changes in adult_steps:
            response = client.post(
                f"{base}/steps/{route_id}",
                json=changes.model_dump(mode="json", by_alias=True, exclude_unset=True),
                headers=headers,
                follow_redirects=False,
            )
            assert response.status_code == 303

        assert response.headers["location"] == f"{base}/review"

        response = client.get(f"{base}/review")
        assert response.status_code == 200
        assert response.json()["state"]["editMode"] is True

        response = client.post(f"{base}/submit", headers=headers)
        assert response.status_code == 200
        assert response.json()["confirmation_code"] == "CONF-0001"
        assert response.json()["variant"] == "apply-intake-adult"
        mock_submitter.submit.assert_awaited_once()

        response = client.get(f"{base}/review", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == settings.apply_url_en


class TestChildren:
    def test_add_child_to_adult_flow_redirects_to_furthest_step(self, client):
        body, headers = start(client)
        base = f"{PREFIX}/en/flows/apply/{body['id']}"

        response = client.post(f"{base}/children", headers=headers, follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == f"{base}/steps/type-of-application"

    def test_unknown_child_step_returns_404(self, client):
        body, _ = start(client)

        response = client.get(
            f"{PREFIX}/en/flows/apply/{body['id']}/children/"
            "33333333-3333-3333-3333-333333333333/steps/favourite-toy"
        )

        assert response.status_code == 404


class TestFamilyApplication:
    """Walk a family application, children included, over HTTP."""

    def post(self, client, url, headers, json=None):
        response = client.post(url, json=json, headers=headers, follow_redirects=False)
        assert response.status_code == 303
        return response.headers["location"]

    def test_family_application(self, client, mock_submitter, family_steps, child):
        body, headers = start(client)
        base = f"{PREFIX}/en/flows/apply/{body['id']}"

        for route_id, changes in family_steps:
            location = self.post(
                client,
                f"{base}/steps/{route_id}",
                headers,
                changes.model_dump(mode="json", by_alias=True, exclude_unset=True),
            )
        assert location == f"{base}/steps/children"

        location = self.post(client, f"{base}/children", headers)
        assert location.startswith(f"{base}/children/")
        assert location.endswith("/steps/information")
        child_base = location.removesuffix("/information")

        response = client.get(location)
        assert response.status_code == 200
        assert response.json()["step"] == "information"

        answers = {
            "information": {"information": child.information},
            "dental-insurance": {"dentalInsurance": child.dental_insurance},
            "dental-benefits": {"dentalBenefits": child.dental_benefits},
        }
        expected = [
            f"{child_base}/dental-insurance",
            f"{child_base}/dental-benefits",
            f"{base}/steps/children",
        ]
        for (route_id, fields), next_url in zip(answers.items(), expected):
            payload = {
                name: value.model_dump(mode="json", by_alias=True, exclude_unset=True)
                for name, value in fields.items()
            }
            assert self.post(client, f"{child_base}/{route_id}", headers, payload) == next_url

        location = self.post(client, f"{base}/steps/children", headers, {})
        assert location == f"{base}/review"

        response = client.get(f"{base}/review")
        assert response.status_code == 200
        assert len(response.json()["state"]["children"]) == 1

        response = client.post(f"{base}/submit", headers=headers)
        assert response.status_code == 200
        assert response.json()["variant"] == "apply-intake-family"
        mock_submitter.submit.assert_awaited_once()

    def test_remove_child(self, client, family_steps):
        body, headers = start(client)
        base = f"{PREFIX}/en/flows/apply/{body['id']}"
        for route_id, changes in family_steps:
            self.post(
                client,
                f"{base}/steps/{route_id}",
                headers,
                changes.model_dump(mode="json", by_alias=True, exclude_unset=True),
            )

        location = self.post(client, f"{base}/children", headers)
        child_id = location.removeprefix(f"{base}/children/").split("/")[0]

        location = self.post(client, f"{base}/children/{child_id}/remove", headers)
        assert location == f"{base}/steps/children"

        response = client.get(f"{base}/children/{child_id}/steps/information", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == f"{base}/steps/children"
