"""HTTP surface, driven end to end with an in-memory asset loader."""

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from stripbooth.config.settings import settings
from stripbooth.domain.booth_service import BoothService
from stripbooth.main import app

AUTH = (settings.BASIC_AUTH_USERNAME, settings.BASIC_AUTH_PASSWORD)
API = settings.API_V1_STR


@pytest.fixture
def uploads():
    return []


@pytest.fixture
def client(fake_loader_cls, solid_photo, png_bytes, uploads):
    blobs = {
        "red": png_bytes(solid_photo((230, 20, 20, 255))),
        "green": png_bytes(solid_photo((20, 230, 20, 255))),
        "blue": png_bytes(solid_photo((20, 20, 230, 255))),
    }

    def sink(png, decision, public_id):
        uploads.append((decision, public_id))
        return f"https://cdn.example/{public_id}.png" if decision == "save" else None

    with TestClient(app) as c:
        app.state.booth_service = BoothService(app.state.executor, loader=fake_loader_cls(blobs), commit_sink=sink)
        yield c


def _create(client, **body):
    payload = {"template_id": "comic-boom", "photos": ["red", "green", "blue"]}
    payload.update(body)
    return client.post(f"{API}/sessions", json=payload, auth=AUTH)


def test_health_counts_sessions(client):
    assert client.get("/health").json()["active_sessions"] == 0
    _create(client)
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["active_sessions"] == 1


def test_catalog_is_public(client):
    templates = client.get(f"{API}/templates").json()
    assert {t["layout"] for t in templates} >= {"strip", "grid"}
    stickers = client.get(f"{API}/stickers").json()
    assert len(stickers) > 0 and {"type", "label"} <= set(stickers[0])


def test_full_session_flow(client, uploads):
    created = _create(client)
    assert created.status_code == 201
    data = created.json()
    sid = data["session_id"]
    assert data["status"] == "ready"
    assert data["mode"] == "fallback"

    sticker = client.post(f"{API}/sessions/{sid}/stickers", json={"glyph_type": "🎃"}, auth=AUTH)
    assert sticker.status_code == 201
    sticker_id = sticker.json()["id"]

    moved = client.patch(
        f"{API}/sessions/{sid}/stickers/{sticker_id}",
        json={"x": 20, "y": 30, "scale": 1.5, "rotation": 400},
        auth=AUTH,
    ).json()
    assert (moved["x"], moved["y"], moved["scale"], moved["rotation"]) == (20, 30, 1.5, 40)

    assert client.put(f"{API}/sessions/{sid}/filter", json={"filter": "slime"}, auth=AUTH).json()["filter"] == "slime"

    state = client.get(f"{API}/sessions/{sid}").json()
    assert state["filter"] == "slime"
    assert state["selected_sticker_id"] == sticker_id

    composite = client.get(f"{API}/sessions/{sid}/composite")
    assert composite.headers["content-type"] == "image/png"
    size = Image.open(BytesIO(composite.content)).size
    assert list(size) == state["size"]

    preview = client.get(f"{API}/sessions/{sid}/preview")
    assert max(Image.open(BytesIO(preview.content)).size) <= settings.PREVIEW_MAX_SIDE

    final = client.post(f"{API}/sessions/{sid}/finish?download=true", json={"decision": "save"}, auth=AUTH)
    assert final.status_code == 200
    assert "attachment" in final.headers["content-disposition"]
    assert Image.open(BytesIO(final.content)).size == size
    assert uploads == [("save", sid)]

    assert client.get(f"{API}/sessions/{sid}").status_code == 404


def test_finish_returns_url(client):
    sid = _create(client).json()["session_id"]
    body = client.post(f"{API}/sessions/{sid}/finish", json={}, auth=AUTH).json()
    assert body == {"session_id": sid, "decision": "save", "url": f"https://cdn.example/{sid}.png"}


def test_inline_template(client):
    template = {"id": "mine", "name": "Mine", "photo_count": 1, "layout": "single"}
    data = _create(client, template_id=None, template=template, photos=["blue"]).json()
    assert data["template_id"] == "mine"
    assert data["size"] == [900, 1000]


def test_replace_photos(client):
    sid = _create(client).json()["session_id"]
    resp = client.put(f"{API}/sessions/{sid}/photos", json=["blue", "blue", "blue"], auth=AUTH)
    assert resp.status_code == 200
    assert resp.json()["status"] == "ready"


def test_sticker_select_and_remove(client):
    sid = _create(client).json()["session_id"]
    first = client.post(f"{API}/sessions/{sid}/stickers", json={"glyph_type": "A"}, auth=AUTH).json()["id"]
    client.post(f"{API}/sessions/{sid}/stickers", json={"glyph_type": "B"}, auth=AUTH)
    client.post(f"{API}/sessions/{sid}/stickers/{first}/select", auth=AUTH)
    assert client.get(f"{API}/sessions/{sid}").json()["selected_sticker_id"] == first

    assert client.delete(f"{API}/sessions/{sid}/stickers/{first}", auth=AUTH).status_code == 200
    state = client.get(f"{API}/sessions/{sid}").json()
    assert [s["glyph_type"] for s in state["stickers"]] == ["B"]
    assert state["selected_sticker_id"] is None


def test_mutations_need_auth(client):
    assert client.post(f"{API}/sessions", json={"template_id": "comic-boom", "photos": ["red"]}).status_code == 401
    assert _create(client).status_code == 201
    bad = (AUTH[0], "wrong")
    resp = client.post(f"{API}/sessions", json={"template_id": "comic-boom", "photos": ["red"]}, auth=bad)
    assert resp.status_code == 401


@pytest.mark.parametrize("call", [
    lambda c: c.get(f"{API}/sessions/nope"),
    lambda c: c.get(f"{API}/sessions/nope/composite"),
    lambda c: c.delete(f"{API}/sessions/nope", auth=AUTH),
])
def test_unknown_session_is_404(client, call):
    assert call(client).status_code == 404


def test_unknown_template_is_404(client):
    assert _create(client, template_id="does-not-exist").status_code == 404


def test_unknown_sticker_is_404(client):
    sid = _create(client).json()["session_id"]
    assert client.patch(f"{API}/sessions/{sid}/stickers/99", json={"x": 1}, auth=AUTH).status_code == 404


def test_bad_inputs_are_422(client):
    sid = _create(client).json()["session_id"]
    assert client.put(f"{API}/sessions/{sid}/filter", json={"filter": "sparkle"}, auth=AUTH).status_code == 422
    sticker_id = client.post(f"{API}/sessions/{sid}/stickers", json={"glyph_type": "A"}, auth=AUTH).json()["id"]
    resp = client.patch(f"{API}/sessions/{sid}/stickers/{sticker_id}", json={"scale": 0}, auth=AUTH)
    assert resp.status_code == 422


def test_unloadable_photos_ask_for_retry(client):
    resp = _create(client, photos=["missing-1", "missing-2", "missing-3"])
    assert resp.status_code == 422
    assert "retry" in resp.json()["detail"]


def test_too_few_photos_are_rejected_up_front(client):
    assert _create(client, photos=["red", "green"]).status_code == 422
    sid = _create(client).json()["session_id"]
    assert client.put(f"{API}/sessions/{sid}/photos", json=["blue"], auth=AUTH).status_code == 422
    assert client.get(f"{API}/sessions/{sid}").json()["status"] == "ready"


def test_some_unloadable_photos_still_compose(client):
    resp = _create(client, photos=["red", "missing", "blue"])
    assert resp.status_code == 201
    assert resp.json()["status"] == "ready"


def test_discard_session(client):
    sid = _create(client).json()["session_id"]
    assert client.delete(f"{API}/sessions/{sid}", auth=AUTH).json()["status"] == "cancelled"
    assert client.get(f"{API}/sessions/{sid}").status_code == 404


@pytest.mark.parametrize("raw", ['{"scale": Infinity}', '{"x": NaN}', '{"rotation": -Infinity}', '{"scale": 100000}'])
def test_out_of_range_sticker_values_are_422(client, raw):
    sid = _create(client).json()["session_id"]
    sticker_id = client.post(f"{API}/sessions/{sid}/stickers", json={"glyph_type": "👻"}, auth=AUTH).json()["id"]
    resp = client.patch(
        f"{API}/sessions/{sid}/stickers/{sticker_id}",
        content=raw, headers={"content-type": "application/json"}, auth=AUTH,
    )
    assert resp.status_code == 422
    state = client.get(f"{API}/sessions/{sid}").json()
    assert state["stickers"][0]["scale"] == 1.0
    assert client.post(f"{API}/sessions/{sid}/finish?download=true", json={}, auth=AUTH).status_code == 200
