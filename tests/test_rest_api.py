import pytest
from fastapi.testclient import TestClient

from peereval.core.enums import StoreTable
from peereval.core.ids import SequentialIdGenerator
from peereval.core.identity import StaticIdentityProvider
from peereval.main import PeerEvalPlatform

from conftest import GOOD_RATINGS, FlakyStore


TEACHER = {'X-User-Id': "teacher"}


def _as(user_id):
    return {'X-User-Id': user_id}


@pytest.fixture()
def client(platform) -> TestClient:
    return TestClient(platform.app)


def _course_with_students(client, students=("ana", "beto", "carla")):
    response = client.post("/courses", json={'name': "Móviles"}, headers=TEACHER)
    assert response.status_code == 201
    course = response.json()
    for student_id in students:
        joined = client.post("/courses/join", json={'code': course['registration_code']}, headers=_as(student_id))
        assert joined.status_code == 200
    return course


def _open_assessment(client, students=("ana", "beto", "carla")):
    course = _course_with_students(client, students)
    category = client.post(f"/courses/{course['id']}/categories", json={
        'name': "Equipos", 'random_groups': True, 'max_students_per_group': len(students),
    }, headers=TEACHER).json()
    activity = client.post(f"/courses/{course['id']}/activities", json={
        'category_id': category['id'], 'name': "Entrega 1",
    }, headers=TEACHER).json()
    response = client.post(f"/activities/{activity['id']}/assessments", json={
        'title': "Pares", 'duration_minutes': 60,
    }, headers=TEACHER)
    assert response.status_code == 201
    return course, category, activity, response.json()


def test_health(client) -> None:
    assert client.get("/health").json()['status'] == "healthy"
    assert client.get("/").json()['message'] == "PeerEval API"


def test_missing_user_header_is_unauthorized(client) -> None:
    response = client.post("/courses", json={'name': "Móviles"})

    assert response.status_code == 401


def test_course_lifecycle(client) -> None:
    course = _course_with_students(client, ["ana"])

    listed = client.get("/courses", headers=TEACHER).json()
    assert [c['id'] for c in listed] == [course['id']]
    assert client.get(f"/courses/{course['id']}").json()['student_ids'] == ["ana"]

    unknown = client.post("/courses/join", json={'code': "000000"}, headers=_as("beto"))
    assert unknown.status_code == 404
    assert unknown.json()['detail']['error'] == "unknown_code"

    invited = client.post(f"/courses/{course['id']}/invitations", json={'email': "Beto@Uni.edu"}, headers=TEACHER)
    assert invited.json()['invitations'] == ["beto@uni.edu"]

    not_teacher = client.post(f"/courses/{course['id']}/invitations", json={'email': "x@y.co"}, headers=_as("ana"))
    assert not_teacher.status_code == 401


def test_unknown_course_is_not_found(client) -> None:
    assert client.get("/courses/missing").status_code == 404


def test_category_creation_and_update(client) -> None:
    course = _course_with_students(client, ["s1", "s2", "s3", "s4"])

    created = client.post(f"/courses/{course['id']}/categories", json={
        'name': "Libre", 'random_groups': False, 'max_students_per_group': 4,
    }, headers=TEACHER)
    assert created.status_code == 201
    category = created.json()
    group_id = category['groups'][0]['id']
    for student_id in ("s1", "s2", "s3"):
        joined = client.post(f"/groups/{group_id}/members", json={}, headers=_as(student_id))
        assert joined.status_code == 200

    outsider = client.post(f"/groups/{group_id}/members", json={'student_id': "s9"}, headers=TEACHER)
    assert outsider.status_code == 400

    updated = client.patch(f"/categories/{category['id']}", json={'max_students_per_group': 2}, headers=TEACHER)
    assert updated.status_code == 200
    assert updated.json()['unassigned_student_ids'] == ["s3"]
    assert len(client.get(f"/categories/{category['id']}/groups").json()) == 2
    listed = client.get(f"/courses/{course['id']}/categories").json()
    assert [c['max_students_per_group'] for c in listed] == [2]

    invalid = client.patch(f"/categories/{category['id']}", json={'max_students_per_group': 0}, headers=TEACHER)
    assert invalid.status_code == 400


def test_evaluation_flow(client, clock) -> None:
    _, _, _, assessment = _open_assessment(client)
    url = f"/assessments/{assessment['id']}"
    assert assessment['state'] == "open"
    assert assessment['remaining_label'] == "1 hora"

    created = client.post(f"{url}/evaluations", json={'evaluatee_id': "beto", 'ratings': GOOD_RATINGS},
                          headers=_as("ana"))
    assert created.status_code == 201
    assert created.json()['ratings'] == GOOD_RATINGS

    duplicate = client.post(f"{url}/evaluations", json={'evaluatee_id': "beto", 'ratings': GOOD_RATINGS},
                            headers=_as("ana"))
    assert duplicate.status_code == 409
    assert duplicate.json()['detail']['reason'] == "already-evaluated"

    bad = client.post(f"{url}/evaluations", json={'evaluatee_id': "carla", 'ratings': {'punctuality': 9}},
                      headers=_as("ana"))
    assert bad.status_code == 400

    assert client.get(f"{url}/pending", headers=_as("ana")).json() == ["carla"]

    edited = client.put(f"{url}/evaluations/beto", json={'ratings': dict(GOOD_RATINGS, attitude=1)},
                        headers=_as("ana"))
    assert edited.status_code == 200
    assert edited.json()['ratings']['attitude'] == 1

    clock.advance(minutes=61)
    late = client.post(f"{url}/evaluations", json={'evaluatee_id': "carla", 'ratings': GOOD_RATINGS},
                       headers=_as("ana"))
    assert late.status_code == 409
    assert late.json()['detail']['reason'] == "expired"
    assert client.get(url).json()['remaining_label'] == "Tiempo Finalizado"


def test_bulk_evaluations(client) -> None:
    _, _, _, assessment = _open_assessment(client)
    url = f"/assessments/{assessment['id']}/evaluations/bulk"

    denied = client.post(url, json={'evaluations': {'beto': GOOD_RATINGS, 'zoe': GOOD_RATINGS}},
                         headers=_as("ana"))
    assert denied.status_code == 409
    assert [d['evaluatee_id'] for d in denied.json()['detail']] == ["zoe"]

    accepted = client.post(url, json={'evaluations': {'beto': GOOD_RATINGS, 'carla': GOOD_RATINGS}},
                           headers=_as("ana"))
    assert accepted.status_code == 201
    assert [e['evaluatee_id'] for e in accepted.json()] == ["beto", "carla"]


def test_scores_and_grade_visibility(client) -> None:
    _, _, _, assessment = _open_assessment(client)
    url = f"/assessments/{assessment['id']}"
    client.post(f"{url}/evaluations", json={'evaluatee_id': "beto", 'ratings': GOOD_RATINGS}, headers=_as("ana"))

    assert client.get(f"{url}/scores", headers=_as("ana")).status_code == 401
    scores = client.get(f"{url}/scores", headers=TEACHER).json()
    assert scores[0]['student_id'] == "beto"
    assert scores[0]['overall'] == "4.50"
    assert scores[0]['band'] == "Excelente"
    assert scores[0]['criteria_compact'] == {'punctuality': "5", 'contributions': "4", 'commitment': "4", 'attitude': "5"}
    assert set(scores[-1]['criteria_compact'].values()) == {"N/A"}
    assert scores[-1]['overall'] == "N/A"

    hidden = client.get(f"{url}/my-score", headers=_as("beto")).json()
    assert hidden == {'grades_visible': False, 'score': None}

    client.put(f"{url}/grades-visibility", json={'visible': True}, headers=TEACHER)
    shown = client.get(f"{url}/my-score", headers=_as("beto")).json()
    assert shown['grades_visible'] is True
    assert shown['score']['compact'] == "5"


def test_cancelled_assessment_refuses_submissions(client) -> None:
    _, _, _, assessment = _open_assessment(client)
    url = f"/assessments/{assessment['id']}"

    cancelled = client.post(f"{url}/cancel", headers=TEACHER)
    assert cancelled.json()['state'] == "cancelled"
    assert cancelled.json()['remaining_label'] == "Cancelada"

    refused = client.post(f"{url}/evaluations", json={'evaluatee_id': "beto", 'ratings': GOOD_RATINGS},
                          headers=_as("ana"))
    assert refused.status_code == 409
    assert refused.json()['detail']['message'] == "Esta evaluación ha sido cancelada"


def test_hidden_activity_for_students(client) -> None:
    course = _course_with_students(client, ["ana"])
    category = client.post(f"/courses/{course['id']}/categories", json={'name': "Equipos"}, headers=TEACHER).json()
    client.post(f"/courses/{course['id']}/activities", json={
        'category_id': category['id'], 'name': "Oculta", 'visible': False,
    }, headers=TEACHER)

    assert client.get(f"/courses/{course['id']}/activities", headers=_as("ana")).json() == []
    assert len(client.get(f"/courses/{course['id']}/activities", headers=TEACHER).json()) == 1


def test_store_failures_become_bad_gateway(clock) -> None:
    store = FlakyStore(StoreTable.GROUP, fail_on=1)
    platform = PeerEvalPlatform({'random_seed': 1}, store=store, clock=clock,
                                id_generator=SequentialIdGenerator())
    client = TestClient(platform.app)
    course = _course_with_students(client, ["ana", "beto"])

    response = client.post(f"/courses/{course['id']}/categories", json={
        'name': "Equipos", 'random_groups': True, 'max_students_per_group': 1,
    }, headers=TEACHER)

    assert response.status_code == 502
    assert response.json()['detail']['error'] == "partial_write"
    assert "boom" not in response.text


def test_students_manage_only_their_own_membership(client) -> None:
    course = _course_with_students(client, ["ana", "beto"])
    category = client.post(f"/courses/{course['id']}/categories", json={
        'name': "Libre", 'random_groups': False, 'max_students_per_group': 2,
    }, headers=TEACHER).json()
    group_id = category['groups'][0]['id']

    assert client.post(f"/groups/{group_id}/members", json={}, headers=_as("ana")).status_code == 200
    pushed = client.post(f"/groups/{group_id}/members", json={'student_id': "beto"}, headers=_as("ana"))
    assert pushed.status_code == 401
    assert pushed.json()['detail']['error'] == "not_teacher"
    assert client.delete(f"/groups/{group_id}/members/ana", headers=_as("beto")).status_code == 401

    assert client.post(f"/groups/{group_id}/members", json={'student_id': "beto"}, headers=TEACHER).status_code == 200
    removed = client.delete(f"/groups/{group_id}/members/ana", headers=TEACHER)
    assert removed.json()['member_ids'] == ["beto"]
    left = client.delete(f"/groups/{group_id}/members/beto", headers=_as("beto"))
    assert left.json()['member_ids'] == []


def test_injected_identity_provider_decides_the_acting_user(store, clock) -> None:
    platform = PeerEvalPlatform({'random_seed': 1}, store=store, clock=clock,
                                id_generator=SequentialIdGenerator(),
                                identity_provider=StaticIdentityProvider("teacher"))
    client = TestClient(platform.app)

    created = client.post("/courses", json={'name': "Móviles"})
    assert created.status_code == 201
    assert created.json()['teacher_id'] == "teacher"
    assert [c['id'] for c in client.get("/courses", headers=_as("someone-else")).json()] == [created.json()['id']]
