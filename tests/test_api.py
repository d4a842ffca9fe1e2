from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi.testclient import TestClient

import main
from logic import ChartUnavailableError
from models import BranchDescriptor, ChartAnalysis, LuckCycleRecord, Pillar, StemDescriptor

client = TestClient(main.app)

BIRTH = {"birth_year": 1990, "month": 5, "day": 15, "hour": 14, "minute": 30, "gender": "male"}


def _chart():
    """Small fixed chart: Pre-Luck Era then one cycle from age 7."""
    return ChartAnalysis(
        birth=datetime(1990, 5, 15, 14, 30, tzinfo=ZoneInfo("Asia/Shanghai")),
        sex="male",
        time_known=True,
        year=Pillar.from_ganzhi("庚午"),
        month=Pillar.from_ganzhi("辛巳"),
        day=Pillar.from_ganzhi("甲子"),
        hour=Pillar.from_ganzhi("辛未"),
        luck_cycles=[
            LuckCycleRecord(index=0, age_start=0, year_start=1990, year_end=1996),
            LuckCycleRecord(
                index=1,
                stem=StemDescriptor.from_character("壬"),
                branch=BranchDescriptor.from_character("午"),
                age_start=7, year_start=1997, year_end=2006,
            ),
        ],
    )


def test_health_check():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_birth_data_to_input():
    person = main.BirthData(**BIRTH, time_known=False).to_birth_input()
    assert person.birth.year == 1990
    assert person.sex == "male"
    assert person.time_known is False


def test_invalid_gender_rejected():
    response = client.post("/api/profile", json=dict(BIRTH, gender="男"))
    assert response.status_code == 422


def test_chart_failure_maps_to_422(monkeypatch):
    def broken(person):
        raise ChartUnavailableError("no chart")

    monkeypatch.setattr(main, "get_basic_profile", broken)
    response = client.post("/api/profile", json=BIRTH)
    assert response.status_code == 422
    assert response.json()["detail"] == "no chart"


def test_luck_pillar_invalid_age(monkeypatch):
    monkeypatch.setattr(main, "get_chart_analysis", lambda *args: _chart())
    response = client.post("/api/luck-pillar", json={"user_data": BIRTH, "age": 200})
    assert response.status_code == 200
    assert response.json()["error"] == "Invalid age parameter: must be a number between 0-120"


def test_luck_pillar_valid_age(monkeypatch):
    monkeypatch.setattr(main, "get_chart_analysis", lambda *args: _chart())
    response = client.post("/api/luck-pillar", json={"user_data": BIRTH, "age": 10})
    assert response.status_code == 200
    body = response.json()
    assert (body["stem"], body["branch"]) == ("壬", "午")
    assert body["age_start"] == 7
