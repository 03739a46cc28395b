import pytest
from fastapi.testclient import TestClient

from voicepool import api
from voicepool.models import PLATFORMS
from voicepool.storage import Storage

SEGMENT = {
    "speakerId": "u1",
    "speakerName": "Ada",
    "text": "hello world",
    "timestamp": "2026-10-19T09:30:00+00:00",
}


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(api, "_storage", Storage(db_path=tmp_path / "api.db"))
    monkeypatch.setattr(api, "MEDIA_ROOT", tmp_path / "media")
    monkeypatch.setattr(api, "API_TOKEN", None)
    return TestClient(api.app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_and_fetch_artifact(client):
    response = client.post(
        "/users/u1/artifacts",
        json={"transcript": [SEGMENT], "summary": "Greeting exchanged", "emotion": "warm"},
    )
    assert response.status_code == 201
    created = response.json()
    assert created["userId"] == "u1"
    assert created["transcript"][0]["speakerName"] == "Ada"

    fetched = client.get(f"/users/u1/artifacts/{created['id']}").json()
    assert fetched["summary"] == "Greeting exchanged"
    assert fetched["emotion"] == "warm"

    listing = client.get("/users/u1/artifacts").json()
    assert [item["id"] for item in listing] == [created["id"]]


def test_empty_transcript_is_rejected(client):
    response = client.post("/users/u1/artifacts", json={"transcript": [], "summary": "Nothing"})
    assert response.status_code == 422


def test_incomplete_social_posts_are_rejected(client):
    response = client.post(
        "/users/u1/artifacts",
        json={"transcript": [SEGMENT], "summary": "s", "socialMediaPosts": {"x": {"content": "hi"}}},
    )
    assert response.status_code == 400


def test_social_posts_round_trip(client):
    posts = {name: {"content": f"{name} post"} for name in PLATFORMS}
    created = client.post(
        "/users/u1/artifacts",
        json={"transcript": [SEGMENT], "summary": "s", "socialMediaPosts": posts},
    ).json()
    assert created["socialMediaPosts"]["devto"]["content"] == "devto post"


def test_missing_artifact_returns_404(client):
    response = client.get("/users/u1/artifacts/nope")
    assert response.status_code == 404


def test_profile_creation_is_idempotent(client):
    first = client.put("/users/u1", json={"displayName": "Ada"})
    second = client.put("/users/u1", json={"displayName": "Ada"})
    assert first.json() == {"uid": "u1", "created": True}
    assert second.json() == {"uid": "u1", "created": False}


def test_audio_upload_and_download(client):
    response = client.post(
        "/users/u1/audio",
        data={"timestamp_ms": "1700000000000"},
        files={"file": ("clip.wav", b"RIFFdata", "audio/wav")},
    )
    assert response.status_code == 201
    url = response.json()["url"]
    assert url == "http://testserver/media/audio/u1/1700000000000.wav"

    download = client.get("/media/audio/u1/1700000000000.wav")
    assert download.status_code == 200
    assert download.content == b"RIFFdata"


def test_token_is_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(api, "API_TOKEN", "secret")

    assert client.get("/users/u1/artifacts").status_code == 401
    authorised = client.get("/users/u1/artifacts", headers={"Authorization": "Bearer secret"})
    assert authorised.status_code == 200
