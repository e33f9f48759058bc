"""Tests for progress endpoints backed by the in-memory database."""

from uuid import uuid4

import pytest

from hakgyo.auth.permissions import UserRole
from hakgyo.auth.schemas import UserResponse
from hakgyo.kelas.service import KelasService
from hakgyo.progress.service import ProgressService


@pytest.fixture
def services(app, db_session) -> ProgressService:
    """Kelas and progress services attached to the app."""
    kelas_service = KelasService(db_session, "ks")
    progress_service = ProgressService(db_session, "ks", kelas_service)
    app.state.kelas_service = kelas_service
    app.state.progress_service = progress_service
    return progress_service


QUESTION = {
    "id": 1,
    "text": "Bunyi huruf ㅏ?",
    "options": [{"id": 1, "text": "a", "is_correct": True}, {"id": 2, "text": "o"}],
}


@pytest.fixture
def kelas(client, services, guru, murid, auth_headers) -> dict:
    """Published kelas with a reading and a quiz; ``murid`` is enrolled."""
    headers = auth_headers(guru)
    kelas = client.post("/v1/kelas", json={"title": "Hangul dasar"}, headers=headers).json()
    client.patch(f"/v1/kelas/{kelas['id']}", json={"is_draft": False}, headers=headers)

    materi = [
        client.post(
            f"/v1/kelas/{kelas['id']}/materi", json={"title": title}, headers=headers
        ).json()
        for title in ("Vokal", "Kuis vokal")
    ]
    client.put(
        f"/v1/materi/{materi[1]['id']}/assessment-config",
        json={"passing_score": 100, "questions": [QUESTION]},
        headers=headers,
    )
    client.post(f"/v1/kelas/{kelas['id']}/enroll", headers=auth_headers(murid))
    return {**kelas, "materi": materi}


def test_progress_requires_membership(client, kelas, admin, auth_headers) -> None:
    """Admins may look; unknown kelas are 404."""
    response = client.get(f"/v1/kelas/{kelas['id']}/progress", headers=auth_headers(admin))
    assert response.status_code == 200

    missing = client.get(
        "/v1/kelas/00000000-0000-0000-0000-000000000000/progress",
        headers=auth_headers(admin),
    )
    assert missing.status_code == 404


def test_progress_denied_for_outsider(client, kelas, auth_headers) -> None:
    """Outsiders get 403."""
    outsider = UserResponse(id=uuid4(), email="tamu@example.com", role=UserRole.MURID)
    response = client.get(
        f"/v1/kelas/{kelas['id']}/progress", headers=auth_headers(outsider)
    )
    assert response.status_code == 403


def test_learning_path(client, kelas, murid, auth_headers) -> None:
    """Read, take the quiz, and watch progress follow."""
    headers = auth_headers(murid)
    reading, quiz = kelas["materi"]

    locked = client.get(f"/v1/materi/{quiz['id']}/assessment", headers=headers)
    assert locked.status_code == 403

    done = client.post(f"/v1/materi/{reading['id']}/complete", headers=headers)
    assert done.status_code == 200
    assert done.json()["first_completion"] is True
    assert done.json()["next_materi"]["id"] == quiz["id"]

    manual = client.post(f"/v1/materi/{quiz['id']}/complete", headers=headers)
    assert manual.status_code == 400

    assessment = client.get(f"/v1/materi/{quiz['id']}/assessment", headers=headers)
    assert assessment.status_code == 200
    assert "is_correct" not in assessment.json()["questions"][0]["options"][0]

    duplicate = client.post(
        f"/v1/materi/{quiz['id']}/assessment",
        json={"answers": [
            {"question_id": 1, "selected_option": 1},
            {"question_id": 1, "selected_option": 2},
        ]},
        headers=headers,
    )
    assert duplicate.status_code == 422

    submitted = client.post(
        f"/v1/materi/{quiz['id']}/assessment",
        json={"answers": [{"question_id": 1, "selected_option": 1}]},
        headers=headers,
    )
    assert submitted.status_code == 200
    assert submitted.json()["score"] == 100
    assert submitted.json()["is_passed"] is True
    assert submitted.json()["next_materi_unlocked"] is None

    progress = client.get(f"/v1/kelas/{kelas['id']}/progress", headers=headers).json()
    assert [m["is_fully_completed"] for m in progress["materi"]] == [True, True]
    assert progress["overall_progress"] == {
        "completed_count": 2,
        "total_count": 2,
        "completion_percentage": 100,
    }


def test_no_assessment_is_404(client, kelas, murid, auth_headers) -> None:
    """Reading materi have no assessment."""
    reading, _ = kelas["materi"]
    response = client.get(
        f"/v1/materi/{reading['id']}/assessment", headers=auth_headers(murid)
    )
    assert response.status_code == 404
