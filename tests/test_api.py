import pytest
from fastapi.testclient import TestClient

import api
from farescan.pipeline import TicketScanner

TICKET_TEXT = "Ticket No: DM2024031245\nFrom: Rajiv Chowk\nTo: Kashmere Gate\nDate: 12/03/2024\nFare: 30.00"


@pytest.fixture
def client():
    return TestClient(api.app)


def test_root(client):
    assert client.get("/").json()["message"] == "Fare Ticket Extraction API"


def test_extract_text(client):
    response = client.post("/extract/text", json={"text": TICKET_TEXT})
    assert response.status_code == 200
    data = response.json()
    assert data["ticket_number"] == "DM2024031245"
    assert data["amount"] == 30.0
    assert data["date"] == "2024-03-12T00:00:00"


def test_extract_payload(client):
    response = client.post("/extract/payload", json={"payload": "ticket=AB123456;fare=25.5"})
    assert response.json()["ticket_number"] == "AB123456"
    assert response.json()["amount"] == 25.5


def test_merge(client):
    body = {
        "ocr": {"ticket_number": "A1", "origin": "X"},
        "qr": {"ticket_number": "B2", "origin": "Y"},
    }
    data = client.post("/merge", json=body).json()
    assert data["ticket_number"] == "B2"
    assert data["origin"] == "X"
    assert data["destination"] == "Unknown"


def test_merge_rejects_bad_dates(client):
    response = client.post("/merge", json={"ocr": {"date": "not a date"}})
    assert response.status_code == 400


def test_stats(client):
    body = {"records": [
        {"amount": 10, "date": "2024-03-01T08:00:00", "emissions_saved": "0.50 g CO2"},
        {"amount": 20, "date": "2024-03-02T08:00:00"},
    ]}
    data = client.post("/stats", json=body).json()
    assert data["expenses"]["total_expenses"] == 30.0
    assert data["expenses"]["bill_count"] == 2
    assert data["co2_by_day"] == [{"date": "2024-03-01", "grams": 0.5}]


def test_extract_upload_rejects_unknown_types(client):
    response = client.post("/extract", files={"file": ("ticket.txt", b"hello", "text/plain")})
    assert response.status_code == 400


def test_extract_upload(client, monkeypatch):
    seen = []

    def recognizer(path):
        seen.append(path.suffix)
        return TICKET_TEXT

    monkeypatch.setattr(api, "scanner", TicketScanner(recognizer, lambda p: []))
    response = client.post("/extract", files={"file": ("ticket.png", b"\x89PNG", "image/png")})
    assert response.status_code == 200
    assert response.json()["ticket_number"] == "DM2024031245"
    assert seen == [".png"]
