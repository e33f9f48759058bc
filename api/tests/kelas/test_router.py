"""Tests for kelas endpoints backed by the in-memory database."""

import pytest

from hakgyo.kelas.service import KelasService


@pytest.fixture
def kelas_service(app, db_session) -> KelasService:
    """Real service attached to the app."""
    service = KelasService(db_session, "ks")
    app.state.kelas_service = service
    return service


def create_published(client, headers, **body) -> dict:
    response = client.post("/v1/kelas", json={"title": "Hangul dasar", **body}, headers=headers)
    assert response.status_code == 201
    kelas = response.json()
    response = client.patch(
        f"/v1/kelas/{kelas['id']}", json={"is_draft": False}, headers=headers
    )
    assert response.status_code == 200
    return response.json()


def test_service_unavailable(client) -> None:
    """Without a database the kelas endpoints answer 503."""
    response = client.get("/v1/kelas")
    assert response.status_code == 503


def test_murid_cannot_create_kelas(client, kelas_service, murid, auth_headers) -> None:
    """Authoring needs the guru role."""
    response = client.post(
        "/v1/kelas", json={"title": "Hangul dasar"}, headers=auth_headers(murid)
    )
    assert response.status_code == 403


def test_create_is_draft_until_published(
    client, kelas_service, guru, murid, auth_headers
) -> None:
    """Drafts are invisible to learners."""
    response = client.post(
        "/v1/kelas", json={"title": "Hangul dasar"}, headers=auth_headers(guru)
    )
    assert response.status_code == 201
    kelas = response.json()
    assert kelas["is_draft"] is True

    assert client.get(f"/v1/kelas/{kelas['id']}", headers=auth_headers(murid)).status_code == 404
    assert client.get("/v1/kelas").json()["total"] == 0
    assert client.get("/v1/kelas", headers=auth_headers(guru)).json()["total"] == 1


def test_paid_kelas_requires_payment(
    client, kelas_service, guru, murid, auth_headers
) -> None:
    """402 carries the price next to the message."""
    kelas = create_published(
        client, auth_headers(guru), is_paid=True, price="49.90"
    )

    response = client.post(f"/v1/kelas/{kelas['id']}/enroll", headers=auth_headers(murid))

    assert response.status_code == 402
    body = response.json()
    assert body["error"] is True
    assert body["requires_payment"] is True
    assert body["price"] == 49.9
    assert body["message"]


def test_enroll_twice_conflicts(client, kelas_service, guru, murid, auth_headers) -> None:
    """The second enrollment answers 409."""
    kelas = create_published(client, auth_headers(guru))
    url = f"/v1/kelas/{kelas['id']}/enroll"

    first = client.post(url, headers=auth_headers(murid))
    assert first.status_code == 200
    assert first.json()["enrolled"] is True

    assert client.post(url, headers=auth_headers(murid)).status_code == 409

    membership = client.get(
        f"/v1/kelas/{kelas['id']}/membership", headers=auth_headers(murid)
    )
    assert membership.json()["is_member"] is True

    joined = client.get("/v1/kelas/joined", headers=auth_headers(murid)).json()
    assert [k["id"] for k in joined["items"]] == [kelas["id"]]

    assert client.delete(url, headers=auth_headers(murid)).status_code == 204
    assert client.delete(url, headers=auth_headers(murid)).status_code == 400


def test_materi_order(client, kelas_service, guru, murid, auth_headers) -> None:
    """Materi are appended, reordered and compacted on delete."""
    kelas = create_published(client, auth_headers(guru))
    url = f"/v1/kelas/{kelas['id']}/materi"
    ids = []
    for title in ("Vokal", "Konsonan", "Suku kata"):
        response = client.post(url, json={"title": title}, headers=auth_headers(guru))
        assert response.status_code == 201
        ids.append(response.json()["id"])

    forbidden = client.post(url, json={"title": "X"}, headers=auth_headers(murid))
    assert forbidden.status_code == 403

    reordered = client.put(
        f"{url}/order",
        json={"materi_ids": [ids[2], ids[0], ids[1]]},
        headers=auth_headers(guru),
    )
    assert reordered.status_code == 200
    assert [m["title"] for m in reordered.json()["items"]] == [
        "Suku kata",
        "Vokal",
        "Konsonan",
    ]

    bad = client.put(f"{url}/order", json={"materi_ids": [ids[0]]}, headers=auth_headers(guru))
    assert bad.status_code == 400

    assert client.delete(f"/v1/materi/{ids[0]}", headers=auth_headers(guru)).status_code == 204
    items = client.get(url).json()["items"]
    assert [(m["order"], m["title"]) for m in items] == [(1, "Suku kata"), (2, "Konsonan")]


def test_configure_assessment_validation(
    client, kelas_service, guru, auth_headers
) -> None:
    """Every question needs exactly one correct option."""
    kelas = create_published(client, auth_headers(guru))
    materi = client.post(
        f"/v1/kelas/{kelas['id']}/materi", json={"title": "Kuis"}, headers=auth_headers(guru)
    ).json()
    url = f"/v1/materi/{materi['id']}/assessment-config"
    question = {
        "id": 1,
        "text": "Bunyi huruf ㅏ?",
        "options": [{"id": 1, "text": "a"}, {"id": 2, "text": "o"}],
    }

    invalid = client.put(
        url, json={"passing_score": 70, "questions": [question]}, headers=auth_headers(guru)
    )
    assert invalid.status_code == 422

    empty = client.put(
        url, json={"passing_score": 70, "questions": []}, headers=auth_headers(guru)
    )
    assert empty.status_code == 422

    question["options"][0]["is_correct"] = True
    valid = client.put(
        url, json={"passing_score": 70, "questions": [question]}, headers=auth_headers(guru)
    )
    assert valid.status_code == 200
    assert valid.json()["passing_score"] == 70
    assert valid.json()["question_count"] == 1
