def test_requires_authentication(client):
    r = client.get("/training/sections")
    assert r.status_code == 401
    body = r.json()
    assert body["ok"] is False
    assert body["error_code"] == "unauthorized"


def test_overview_for_new_user(client, learner):
    _, headers = learner
    r = client.get("/training/sections", headers=headers)
    assert r.status_code == 200
    data = r.json()

    assert [s["id"] for s in data["sections"]] == ["section1", "section2", "section3"]
    assert [s["status"] for s in data["sections"]] == ["available", "locked", "locked"]
    assert data["completed_count"] == 0
    assert data["quiz_available"] is False


def test_locked_section_cannot_be_completed(client, learner):
    _, headers = learner
    r = client.post("/training/sections/section2/complete", headers=headers)
    assert r.status_code == 400
    assert r.json()["error_code"] == "validation_error"


def test_complete_unlocks_next(client, learner):
    _, headers = learner
    r = client.post("/training/sections/section1/complete", headers=headers)
    assert r.status_code == 200
    assert r.json()["completed"] is True
    assert r.json()["completion_date"]

    r = client.get("/training/sections/section2", headers=headers)
    assert r.status_code == 200
    assert r.json()["status"] == "available"


def test_watch_progress_threshold(client, learner):
    _, headers = learner
    r = client.post("/training/sections/section1/progress", json={"played_fraction": 0.5}, headers=headers)
    assert r.status_code == 200
    assert r.json()["completed"] is False
    assert r.json()["status"] == "available"

    r = client.post("/training/sections/section1/progress", json={"played_fraction": 0.97}, headers=headers)
    assert r.status_code == 200
    assert r.json()["completed"] is True
    assert r.json()["status"] == "completed"


def test_watch_progress_out_of_range_is_rejected(client, learner):
    _, headers = learner
    r = client.post("/training/sections/section1/progress", json={"played_fraction": 1.5}, headers=headers)
    assert r.status_code == 422
    assert r.json()["error_code"] == "invalid_request"


def test_unknown_section(client, learner):
    _, headers = learner
    assert client.get("/training/sections/section9", headers=headers).status_code == 404
    assert client.post("/training/sections/section9/complete", headers=headers).status_code == 404


def test_all_sections_open_quiz(client, trained_learner):
    _, headers = trained_learner
    data = client.get("/training/sections", headers=headers).json()
    assert data["completed_count"] == 3
    assert data["completion_percentage"] == 100
    assert data["quiz_available"] is True
