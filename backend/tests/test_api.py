from conftest import ADMIN_EMAIL, PASSWORD, login, module_of


def test_info_endpoint(client):
    r = client.get("/info")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_band_calculator_endpoints(client):
    assert len(client.get("/bands/table").json()["table"]) == 41
    r = client.get("/bands/convert", params={"module": "reading", "correct": 30})
    assert r.json() == {"module": "reading", "correct": 30, "band": 5.5, "description": "Modest User"}
    assert client.get("/bands/convert", params={"module": "speaking", "correct": 30}).status_code == 422

    r = client.post("/bands/writing", json={"task_achievement": 6, "coherence_cohesion": 6, "lexical_resource": 6.5, "grammar_accuracy": 6.5})
    assert r.json()["band"] == 6.5
    r = client.post("/bands/writing", json={"task_achievement": 12, "coherence_cohesion": 6, "lexical_resource": 6.5, "grammar_accuracy": 6.5})
    assert r.status_code == 422

    r = client.post("/bands/overall", json={"listening": 6.5, "reading": 6.5, "writing": 7.0, "speaking": 7.0})
    assert r.json() == {"band": 7.0, "description": "Good User"}
    r = client.post("/bands/overall", json={"listening": 11})
    assert r.status_code == 400

    assert client.post("/bands/writing-tasks", json={"task1_band": 6, "task2_band": 7}).json()["band"] == 6.5
    assert client.get("/bands/describe", params={"band": 8}).json()["description"] == "Very Good User"


def test_login_me_and_logout(client, staff):
    bad = client.post("/auth/token", data={"username": ADMIN_EMAIL, "password": "wrong"})
    assert bad.status_code == 401

    headers = login(client, ADMIN_EMAIL.upper(), PASSWORD)
    me = client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["role"] == "ADMIN"

    assert client.post("/auth/logout", headers=headers).json() == {"ok": True}
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_admin_routes_require_admin(client, instructor_headers):
    assert client.get("/admin/students").status_code == 401
    assert client.get("/admin/students", headers=instructor_headers).status_code == 200
    r = client.post("/admin/mocks", json={"title": "x"}, headers=instructor_headers)
    assert r.status_code == 403


def test_create_student_validation(client, admin_headers, student):
    assert student["email"] == "student@example.com"
    dup = client.post(
        "/admin/students",
        json={"email": "student@example.com", "password": PASSWORD, "candidate_number": "C2000"},
        headers=admin_headers,
    )
    assert dup.status_code == 409
    bad = client.post(
        "/admin/students",
        json={"email": "other@example.com", "password": PASSWORD, "candidate_number": "has-dash"},
        headers=admin_headers,
    )
    assert bad.status_code == 422


def test_mock_rejects_unknown_module_type(client, admin_headers):
    r = client.post("/admin/mocks", json={"title": "Bad", "modules": [{"type": "SPEAKING"}]}, headers=admin_headers)
    assert r.status_code == 400


def test_student_cannot_see_answer_key(client, mock_test, student_headers, assignment):
    reading = module_of(mock_test, "READING")
    r = client.get(f"/student/assignments/{assignment['id']}/modules/{reading['id']}", headers=student_headers)
    assert r.status_code == 200
    body = r.json()
    assert all("correct_answer" not in item for item in body["questions"])
    headings = next(item for item in body["questions"] if item["type"] == "MATCHING_HEADINGS")
    assert "correctAnswers" not in headings["content"]
    assert headings["content"]["headings"] == ["i", "ii", "iii", "iv"]


def test_student_routes_reject_staff(client, admin_headers):
    assert client.get("/student/assignments", headers=admin_headers).status_code == 403


def test_validate_token(client, assignment):
    r = client.get("/student/validate-token", params={"token": assignment["access_token"]})
    assert r.status_code == 200
    assert r.json()["assignment"]["test_title"] == "Academic Mock 1"
    assert client.get("/student/validate-token", params={"token": "C9-nope"}).status_code == 404


def test_unknown_access_token_is_rejected(client):
    assert client.post("/auth/student/token", json={"token": "C1-unknown"}).status_code == 404
