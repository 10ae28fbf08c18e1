"""
Integration tests for API endpoints using a SQLite DB.
"""
JOB_TOKEN = "test-job-token"


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
        assert r.json()["env"] == "test"


class TestHabits:
    def test_identity_required(self, client):
        r = client.get("/habits")
        assert r.status_code == 401
        assert r.json()["code"] == "MISSING_IDENTITY"

    def test_create_and_list(self, client, headers):
        r = client.post("/habits", json={"name": "Floss", "color": "#22c55e"}, headers=headers)
        assert r.status_code == 201
        body = r.json()
        assert body["name"] == "Floss"
        assert body["frequency_type"] == "daily"
        assert body["start_date"] == "2099-06-15"
        assert body["is_archived"] is False

        listed = client.get("/habits", headers=headers).json()
        assert listed["total"] == 1
        assert listed["items"][0]["id"] == body["id"]

    def test_create_from_template(self, client, headers):
        templates = client.get("/habits/templates", headers=headers).json()
        exercise = next(t for t in templates if t["name"] == "Exercise")

        r = client.post(
            "/habits",
            json={"template_id": exercise["id"], "frequency_days": [1, 3, 5]},
            headers=headers,
        )
        assert r.status_code == 201
        body = r.json()
        assert body["name"] == "Exercise"
        assert body["icon"] == "dumbbell"
        assert body["frequency_type"] == "weekly"
        assert body["frequency_days"] == [1, 3, 5]
        assert body["template_id"] == exercise["id"]

    def test_templates_sorted_by_name(self, client, headers):
        names = [t["name"] for t in client.get("/habits/templates", headers=headers).json()]
        assert names == sorted(names)

    def test_unknown_template(self, client, headers):
        r = client.post("/habits", json={"template_id": "nope"}, headers=headers)
        assert r.status_code == 404
        assert r.json()["code"] == "TEMPLATE_NOT_FOUND"

    def test_name_or_template_required(self, client, headers):
        r = client.post("/habits", json={"color": "#000"}, headers=headers)
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_bad_weekday_rejected(self, client, headers):
        r = client.post("/habits", json={"name": "Gym", "frequency_days": [0, 8]}, headers=headers)
        assert r.status_code == 422

    def test_archive_hides_habit(self, client, headers, habit):
        r = client.post(f"/habits/{habit['id']}/archive", headers=headers)
        assert r.status_code == 200
        assert r.json()["is_archived"] is True
        assert client.get("/habits", headers=headers).json()["total"] == 0

    def test_list_refreshes_after_create(self, client, headers, habit):
        assert client.get("/habits", headers=headers).json()["total"] == 1
        client.post("/habits", json={"name": "Second"}, headers=headers)
        assert client.get("/habits", headers=headers).json()["total"] == 2

    def test_foreign_habit_not_found(self, client, habit):
        other = {"X-User-Id": "someone-else"}
        assert client.get(f"/habits/{habit['id']}", headers=other).status_code == 404
        r = client.post(f"/habits/{habit['id']}/archive", headers=other)
        assert r.status_code == 404
        assert r.json()["code"] == "HABIT_NOT_FOUND"


class TestLogWindow:
    def test_empty_window_is_dense(self, client, headers, habit):
        r = client.get(f"/habits/{habit['id']}/logs", headers=headers)
        assert r.status_code == 200
        body = r.json()
        assert body["start"] == "2099-06-09"
        assert body["end"] == "2099-06-15"
        assert [i["date"] for i in body["items"]] == [
            "2099-06-09", "2099-06-10", "2099-06-11", "2099-06-12",
            "2099-06-13", "2099-06-14", "2099-06-15",
        ]
        assert all(i["status"] == "unchecked" and i["notes"] == "" and i["id"] is None
                   for i in body["items"])

    def test_future_end_clamped(self, client, headers, habit):
        r = client.get(f"/habits/{habit['id']}/logs?end=2099-12-31", headers=headers)
        assert r.json()["end"] == "2099-06-15"

    def test_custom_length_and_end(self, client, headers, habit):
        r = client.get(f"/habits/{habit['id']}/logs?end=2099-06-01&days=3", headers=headers)
        body = r.json()
        assert [i["date"] for i in body["items"]] == ["2099-05-30", "2099-05-31", "2099-06-01"]

    def test_zero_days_rejected(self, client, headers, habit):
        r = client.get(f"/habits/{habit['id']}/logs?days=0", headers=headers)
        assert r.status_code == 422

    def test_month_view(self, client, headers, habit):
        r = client.get(f"/habits/{habit['id']}/logs/month?month=2099-02-10", headers=headers)
        body = r.json()
        assert body["start"] == "2099-02-01"
        assert body["end"] == "2099-02-28"
        assert len(body["items"]) == 28

    def test_unknown_habit(self, client, headers):
        r = client.get("/habits/does-not-exist/logs", headers=headers)
        assert r.status_code == 404


class TestLogUpdates:
    def test_create_then_update(self, client, headers, habit):
        url = f"/habits/{habit['id']}/logs/2099-06-14"
        r = client.put(url, json={"status": "achieved", "notes": "morning"}, headers=headers)
        assert r.status_code == 200
        created = r.json()
        assert created["id"] is not None
        assert created["date"] == "2099-06-14"

        r = client.put(url, json={"id": created["id"], "status": "not_achieved"}, headers=headers)
        assert r.status_code == 200
        assert r.json()["id"] == created["id"]
        assert r.json()["notes"] == ""

        window = client.get(f"/habits/{habit['id']}/logs", headers=headers).json()
        cell = window["items"][5]
        assert cell["id"] == created["id"]
        assert cell["status"] == "not_achieved"
        assert sum(1 for i in window["items"] if i["id"]) == 1

    def test_second_create_same_day_conflicts(self, client, headers, habit):
        url = f"/habits/{habit['id']}/logs/2099-06-15"
        assert client.put(url, json={"status": "achieved"}, headers=headers).status_code == 200
        r = client.put(url, json={"status": "not_achieved"}, headers=headers)
        assert r.status_code == 502
        body = r.json()
        assert body["code"] == "HABIT_LOG_UPDATE_FAILED"
        assert body["details"]["kind"] == "conflict"

    def test_future_day_rejected(self, client, headers, habit):
        r = client.put(
            f"/habits/{habit['id']}/logs/2099-06-16",
            json={"status": "achieved"},
            headers=headers,
        )
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_LOG_UPDATE"

    def test_invalid_status_rejected(self, client, headers, habit):
        r = client.put(
            f"/habits/{habit['id']}/logs/2099-06-15",
            json={"status": "done"},
            headers=headers,
        )
        assert r.status_code == 422

    def test_notes_too_long(self, client, headers, habit):
        r = client.put(
            f"/habits/{habit['id']}/logs/2099-06-15",
            json={"status": "achieved", "notes": "x" * 501},
            headers=headers,
        )
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_LOG_UPDATE"


class TestStatistics:
    def test_recalculate_once_per_day(self, client, headers, habit):
        client.put(f"/habits/{habit['id']}/logs/2099-06-15", json={"status": "achieved"},
                   headers=headers)

        r = client.post("/statistics/recalculate", headers=headers)
        assert r.status_code == 200
        assert r.json()["message"] == "Statistics updated."

        stats = client.get("/statistics", headers=headers).json()
        assert stats["total"] == 1
        assert stats["items"][0]["achieved_days"] == 1
        assert stats["items"][0]["total_days"] == 7
        assert stats["items"][0]["achievement_rate"] == 14.29

        r = client.post("/statistics/recalculate", headers=headers)
        assert r.status_code == 502
        assert r.json()["code"] == "STATISTICS_RECOMPUTE_FAILED"
        assert "once per day" in r.json()["message"]

    def test_statistics_refresh_after_recalculate(self, client, headers, habit):
        before = client.get("/statistics", headers=headers).json()
        assert before["items"][0]["calculated_at"] is None
        client.post("/statistics/recalculate", headers=headers)
        after = client.get("/statistics", headers=headers).json()
        assert after["items"][0]["calculated_at"] is not None


class TestJobs:
    def test_token_required(self, client):
        assert client.post("/jobs/auto-habit-check").status_code == 401
        r = client.post("/jobs/auto-habit-check", headers={"X-Job-Token": "wrong"})
        assert r.status_code == 401
        assert r.json()["code"] == "JOB_UNAUTHORIZED"

    def test_auto_habit_check_fills_yesterday(self, client, headers, habit):
        r = client.post("/jobs/auto-habit-check", headers={"X-Job-Token": JOB_TOKEN})
        assert r.status_code == 200
        body = r.json()
        assert body["date"] == "2099-06-14"
        assert body["logs_created"] >= 1
        assert body["message"].startswith("Processed ")

        window = client.get(f"/habits/{habit['id']}/logs", headers=headers).json()
        assert window["items"][5]["status"] == "achieved"
        assert window["items"][6]["status"] == "unchecked"

        # Second run for the same day finds the log and writes nothing for it
        again = client.post("/jobs/auto-habit-check", headers={"X-Job-Token": JOB_TOKEN}).json()
        assert again["logs_created"] == 0

    def test_auto_habit_check_explicit_date(self, client, headers, habit):
        r = client.post(
            "/jobs/auto-habit-check?date=2099-06-10",
            headers={"X-Job-Token": JOB_TOKEN},
        )
        assert r.json()["date"] == "2099-06-10"
        window = client.get(f"/habits/{habit['id']}/logs", headers=headers).json()
        assert window["items"][1]["status"] == "achieved"

    def test_scheduled_recompute(self, client, headers, habit):
        r = client.post("/jobs/recalculate-statistics", headers={"X-Job-Token": JOB_TOKEN})
        assert r.status_code == 200
        assert r.json()["habits_processed"] >= 1
        # Scheduled runs do not use up the user's manual run
        assert client.post("/statistics/recalculate", headers=headers).status_code == 200
