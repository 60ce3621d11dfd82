"""HTTP surface tests through FastAPI's TestClient."""

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app
from models.schema import FormSchema
from schemas import SCHEMAS
from services.frappe_client import FrappeClient

RENAME = "/api/method/frappe.model.rename_doc.update_document_title"
RECORD = {"name": "PC-0001", "designation_name": "PC-0001", "description": "Pump crew",
          "modified": "2024-05-01 10:00:00", "docstatus": 0}


@pytest.fixture
def api(frappe):
    app.state.frappe = FrappeClient(
        base_url="http://frappe.test", api_key="key", api_secret="secret",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(frappe.handler)),
    )
    frappe.on("GET", "/api/resource/Designation/PC-0001", body={"data": RECORD})
    with TestClient(app) as test_client:
        yield test_client


def _open(api, docname="PC-0001"):
    response = api.post("/forms/designation/sessions", json={"docname": docname})
    assert response.status_code == 201, response.text
    return response.json()


def test_open_session_renders_tabs(api):
    view = _open(api)
    assert view["docname"] == "PC-0001"
    assert view["dirty"] is False
    widgets = {w["name"]: w for w in view["tabs"][0]["widgets"]}
    assert widgets["designation_name"]["kind"] == "text"
    assert widgets["description"]["kind"] == "textarea"
    assert widgets["name"]["kind"] == "readonly"
    assert widgets["name"]["value"] == "PC-0001"
    assert "on_change" not in widgets["description"]


def test_unknown_schema_and_session(api):
    assert api.post("/forms/nope/sessions", json={}).status_code == 404
    response = api.get("/forms/sessions/does-not-exist")
    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "SessionClosedError"


def test_missing_document_is_404(api):
    response = api.post("/forms/designation/sessions", json={"docname": "PC-404"})
    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "NotFoundError"


def test_edit_then_submit_nothing_to_save(api):
    view = _open(api)
    response = api.patch(f"/forms/sessions/{view['id']}/values", json={"values": {"description": "Motor crew"}})
    assert response.json()["dirty"] is True
    assert response.json()["changed"] == ["description"]

    response = api.patch(f"/forms/sessions/{view['id']}/values", json={"values": {"description": "Pump crew"}})
    assert response.json()["dirty"] is False

    response = api.post(f"/forms/sessions/{view['id']}/submit")
    assert response.status_code == 200
    assert response.json()["status"] == "nothing_to_save"


def test_unknown_field_is_422(api):
    view = _open(api)
    response = api.patch(f"/forms/sessions/{view['id']}/values", json={"values": {"bogus": 1}})
    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "InvalidInput"


def test_failed_rename_is_reported_and_nothing_is_updated(api, frappe):
    frappe.on("POST", RENAME, 409, {"exc_type": "DuplicateEntryError", "message": "PC-0002 already exists"})
    view = _open(api)
    api.patch(f"/forms/sessions/{view['id']}/values", json={"values": {"designation_name": "PC-0002"}})

    response = api.post(f"/forms/sessions/{view['id']}/submit")

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["kind"] == "RenameError"
    assert "PC-0002 already exists" in detail["messages"]
    assert frappe.calls("PUT") == []
    assert api.get(f"/forms/sessions/{view['id']}").json()["docname"] == "PC-0001"


def test_validation_errors_are_422(api):
    response = api.post("/forms/designation/sessions", json={})
    session_id = response.json()["id"]
    response = api.post(f"/forms/sessions/{session_id}/submit")
    assert response.status_code == 422
    assert response.json()["detail"]["messages"] == ["Designation is required"]


def test_closed_session_is_gone(api):
    view = _open(api)
    assert api.delete(f"/forms/sessions/{view['id']}").status_code == 204
    assert api.get(f"/forms/sessions/{view['id']}").status_code == 404


def test_table_rows_endpoints(api):
    session_id = api.post("/forms/spare-indent/sessions", json={}).json()["id"]
    response = api.post(f"/forms/sessions/{session_id}/tables/items/rows", json={"values": {"item_code": "BOLT"}})
    assert response.status_code == 200
    assert response.json()["values"]["items"][0]["item_code"] == "BOLT"

    response = api.patch(f"/forms/sessions/{session_id}/tables/items/cells",
                         json={"index": 0, "column": "qty", "value": 4})
    assert response.json()["values"]["items"][0]["qty"] == 4

    response = api.request("DELETE", f"/forms/sessions/{session_id}/tables/items/rows", json={"indices": [5]})
    assert response.status_code == 422
    response = api.request("DELETE", f"/forms/sessions/{session_id}/tables/items/rows", json={"indices": [0]})
    assert response.json()["values"]["items"] == []


def test_link_search_endpoint(api, frappe):
    frappe.on("GET", "/api/resource/Stage No", body={"data": [{"name": "S-1"}]})
    session_id = api.post("/forms/asset-interchange/sessions", json={"values": {"lis_name": "LIS-1"}}).json()["id"]
    response = api.get(f"/forms/sessions/{session_id}/search/stage", params={"q": "S", "debounce": False})
    assert response.json() == {"options": [{"label": "S-1", "value": "S-1"}], "superseded": False}
    assert '"lis_name", "=", "LIS-1"' in frappe.calls("GET", "/api/resource/Stage No")[0].url.params["filters"]


def test_bulk_delete_endpoint(api, frappe):
    frappe.on("DELETE", "/api/resource/Designation/PC-0001", body={"message": "ok"})
    response = api.post("/forms/designation/bulk-delete", json={"names": ["PC-0001", "PC-0009"]})
    assert response.status_code == 200
    body = response.json()
    assert body["deleted"] == ["PC-0001"]
    assert body["errors"][0]["name"] == "PC-0009"
    assert body["errors"][0]["kind"] == "NotFoundError"


def test_backend_health(api, frappe):
    assert api.get("/health/backend").json()["status"] == "offline"
    frappe.on("GET", "/api/method/ping", body={"message": "pong"})
    assert api.get("/health/backend").json()["status"] == "online"


BUTTON_SCHEMA = FormSchema.model_validate({
    "doctype": "Stock Entry",
    "tabs": [{"name": "Main", "fields": [
        {"name": "company", "type": "Data"},
        {"name": "items", "type": "Table", "childDoctype": "Stock Entry Detail", "columns": [
            {"name": "item_code", "type": "Link", "linkTarget": "Item"},
            {"name": "uom", "type": "Link", "linkTarget": "UOM",
             "filterMapping": [{"sourceField": "item_code", "targetField": "parent"}]},
        ]},
        {"name": "use_default_company", "type": "Button",
         "action": lambda form: form.set_value("company", "ACME")},
    ]}],
})


@pytest.fixture
def stock_entry(api, monkeypatch):
    monkeypatch.setitem(SCHEMAS, "stock-entry", BUTTON_SCHEMA)
    return api


def test_button_endpoint_runs_the_action(stock_entry):
    session_id = stock_entry.post("/forms/stock-entry/sessions", json={}).json()["id"]
    response = stock_entry.post(f"/forms/sessions/{session_id}/buttons/use_default_company")
    assert response.status_code == 200
    assert response.json()["values"]["company"] == "ACME"
    assert stock_entry.post(f"/forms/sessions/{session_id}/buttons/company").status_code == 422


def test_row_search_endpoint_filters_by_the_row(stock_entry, frappe):
    frappe.on("GET", "/api/resource/UOM", body={"data": [{"name": "Box"}]})
    session_id = stock_entry.post("/forms/stock-entry/sessions", json={}).json()["id"]
    stock_entry.post(f"/forms/sessions/{session_id}/tables/items/rows", json={"values": {"item_code": "NUT"}})

    response = stock_entry.get(f"/forms/sessions/{session_id}/search/items",
                               params={"column": "uom", "row": 0, "debounce": False})

    assert response.json()["options"] == [{"label": "Box", "value": "Box"}]
    assert '"parent", "=", "NUT"' in frappe.calls("GET", "/api/resource/UOM")[0].url.params["filters"]
    response = stock_entry.get(f"/forms/sessions/{session_id}/search/items",
                               params={"column": "uom", "row": 3, "debounce": False})
    assert response.status_code == 422
