"""
Contract tests for the serverless function endpoints.

The platform client dependency is overridden with the in-memory fake so
every handler runs end-to-end without network access.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

import api
import config
from conftest import FakePlatformClient, hours_ago

ME = {"id": "u1", "full_name": "Dana Cruz", "email": "dana@example.com", "role": "user"}


@pytest.fixture
def make_client():
    api._limiter.reset()

    def make(user=ME, **store):
        platform = FakePlatformClient(user=user, store={k: list(v) for k, v in store.items()})
        api.app.dependency_overrides[api.get_client] = lambda: platform
        return platform, TestClient(api.app)

    yield make
    api.app.dependency_overrides.clear()
    api._limiter.reset()


def post(http, name, body=None):
    return http.post(f"/functions/{name}", json=body if body is not None else {})


class TestMeta:

    def test_root(self, make_client):
        _, http = make_client()
        assert http.get("/").json() == {"service": "nova-functions", "status": "ok"}

    def test_health_check(self, make_client):
        _, http = make_client()
        body = http.get("/health-check").json()
        assert body["status"] == "Online"
        assert "app_id_set" in body


class TestAuthAndValidation:

    @pytest.mark.parametrize("name", [
        "deleteWorkout", "removeFriend", "searchUser", "getUsersByIds",
        "sendMessageNotification", "syncGoals", "updateGoalProgress",
    ])
    def test_anonymous_caller_rejected(self, make_client, name):
        _, http = make_client(user=None)
        resp = post(http, name)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_malformed_body_is_400(self, make_client):
        _, http = make_client()
        resp = post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": "lots"})
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid request body")

    def test_body_validated_before_auth(self, make_client):
        _, http = make_client(user=None)
        resp = post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": "lots"})
        assert resp.status_code == 400


class TestDeleteWorkout:

    def test_missing_id(self, make_client):
        _, http = make_client()
        resp = post(http, "deleteWorkout", {})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing workoutId"}

    def test_not_found(self, make_client):
        _, http = make_client(Workout=[])
        assert post(http, "deleteWorkout", {"workoutId": "w9"}).status_code == 404

    def test_other_users_workout_forbidden(self, make_client):
        platform, http = make_client(Workout=[{"id": "w1", "user_id": "u2"}])
        resp = post(http, "deleteWorkout", {"workoutId": "w1"})
        assert resp.status_code == 403
        assert platform.store["Workout"] == [{"id": "w1", "user_id": "u2"}]

    def test_owner_deletes(self, make_client):
        platform, http = make_client(Workout=[{"id": "w1", "user_id": "u1"}])
        resp = post(http, "deleteWorkout", {"workoutId": "w1"})
        assert resp.json() == {"success": True, "message": "Workout deleted successfully"}
        assert platform.store["Workout"] == []

    def test_admin_deletes_any(self, make_client):
        admin = dict(ME, role="admin")
        platform, http = make_client(user=admin, Workout=[{"id": "w1", "user_id": "u2"}])
        assert post(http, "deleteWorkout", {"workoutId": "w1"}).status_code == 200
        assert platform.store["Workout"] == []


class TestRemoveFriend:

    def test_removes_either_direction(self, make_client):
        platform, http = make_client(Friend=[{"id": "f1", "user_id": "u2", "friend_id": "u1"}])
        resp = post(http, "removeFriend", {"friendId": "u2"})
        assert resp.json()["success"] is True
        assert platform.store["Friend"] == []

    def test_no_friendship(self, make_client):
        _, http = make_client(Friend=[{"id": "f1", "user_id": "u3", "friend_id": "u1"}])
        resp = post(http, "removeFriend", {"friendId": "u2"})
        assert resp.status_code == 404
        assert resp.json() == {"error": "Friendship not found"}

    def test_missing_friend_id(self, make_client):
        _, http = make_client()
        assert post(http, "removeFriend", {}).status_code == 400


class TestSearchUser:

    USERS = [
        {"id": "u2", "full_name": "Avi", "username": "avi", "email": "avi@example.com",
         "caution_count": 3, "role": "admin"},
    ]

    def test_by_username_lowercases_query(self, make_client):
        platform, http = make_client(User=self.USERS)
        resp = post(http, "searchUser", {"searchBy": "username", "query": "AVI"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == "u2"
        assert "role" not in body
        assert "caution_count" not in body
        assert ("filter", "User", {"username": "avi"}) in platform.calls

    def test_other_search_field_uses_email(self, make_client):
        _, http = make_client(User=self.USERS)
        resp = post(http, "searchUser", {"searchBy": "email", "query": "Avi@Example.com"})
        assert resp.json()["username"] == "avi"

    def test_not_found_message(self, make_client):
        _, http = make_client(User=self.USERS)
        resp = post(http, "searchUser", {"searchBy": "username", "query": "ghost"})
        assert resp.status_code == 404
        assert resp.json() == {"error": "User not found with username: ghost"}

    def test_missing_fields(self, make_client):
        _, http = make_client()
        assert post(http, "searchUser", {"searchBy": "username"}).status_code == 400

    def test_rate_limited(self, make_client):
        _, http = make_client(User=self.USERS)
        allowed = int(config.SEARCH_RATE_LIMIT.split("/")[0])
        body = {"searchBy": "username", "query": "avi"}
        for _ in range(allowed):
            assert post(http, "searchUser", body).status_code == 200
        resp = post(http, "searchUser", body)
        assert resp.status_code == 429
        assert resp.json()["error"].startswith("Rate limit exceeded")


class TestGetUsersByIds:

    def test_returns_public_profiles_with_trust(self, make_client):
        users = [
            {"id": "u2", "full_name": "Avi", "safe_count": 4, "caution_count": 1, "role": "admin"},
            {"id": "u3", "full_name": "Noa"},
        ]
        _, http = make_client(User=users)
        body = post(http, "getUsersByIds", {"userIds": ["u2", "missing"]}).json()
        assert len(body["users"]) == 1
        profile = body["users"][0]
        assert profile["id"] == "u2"
        assert profile["safe_count"] == 4
        assert "role" not in profile

    def test_nested_ids_do_not_break_lookup(self, make_client):
        _, http = make_client(User=[{"id": "u2", "full_name": "Avi"}])
        resp = post(http, "getUsersByIds", {"userIds": [["u2"], "u2"]})
        assert resp.status_code == 200
        assert [u["id"] for u in resp.json()["users"]] == ["u2"]

    def test_empty_list_is_400(self, make_client):
        _, http = make_client()
        resp = post(http, "getUsersByIds", {"userIds": []})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing or invalid userIds array"}


class TestSendMessageNotification:

    def _store(self):
        return {
            "User": [ME, {"id": "u2", "email": "avi@example.com"}, {"id": "u3", "email": "noa@example.com"}],
            "Circle": [{"id": "c1", "name": "Dawn Patrol", "members": ["u1", "u2", "u3"]}],
            "CircleMessage": [{"id": "m1", "content": "see you at 5", "type": "text"}],
        }

    def test_notifies_members(self, make_client):
        platform, http = make_client(**self._store())
        resp = post(http, "sendMessageNotification", {"circleId": "c1", "messageId": "m1"})
        assert resp.json() == {"success": True, "sent": 2, "failed": 0}
        assert {e["to"] for e in platform.sent_emails} == {"avi@example.com", "noa@example.com"}

    def test_mentions_restrict_recipients(self, make_client):
        platform, http = make_client(**self._store())
        post(http, "sendMessageNotification", {"circleId": "c1", "messageId": "m1", "mentions": ["u3"]})
        assert [e["to"] for e in platform.sent_emails] == ["noa@example.com"]

    def test_missing_ids(self, make_client):
        _, http = make_client()
        assert post(http, "sendMessageNotification", {"circleId": "c1"}).status_code == 400

    def test_unknown_message(self, make_client):
        _, http = make_client(**self._store())
        resp = post(http, "sendMessageNotification", {"circleId": "c1", "messageId": "m9"})
        assert resp.status_code == 404
        assert resp.json() == {"error": "Message not found"}

    def test_unknown_circle(self, make_client):
        _, http = make_client(**self._store())
        resp = post(http, "sendMessageNotification", {"circleId": "c9", "messageId": "m1"})
        assert resp.json() == {"error": "Circle not found"}


class TestSyncGoals:

    def test_updates_reported(self, make_client):
        goals = [{"id": "g1", "user_id": "u1", "title": "Bench Press", "discipline": "strength",
                  "status": "active", "current_value": 80, "target_value": 100}]
        workouts = [{"user_id": "u1", "workout_type": "strength", "created_date": hours_ago(5),
                     "exercises": [{"name": "Bench Press", "set_records": [{"weight": 92}]}]}]
        platform, http = make_client(Goal=goals, Workout=workouts, Meal=[])
        body = post(http, "syncGoals").json()
        assert body["success"] is True
        assert body["updated"] == 1
        assert body["updates"][0]["goal"] == "Bench Press"
        assert body["updates"][0]["new"] == 92
        assert platform.store["Goal"][0]["current_value"] == 92

    def test_no_goals(self, make_client):
        _, http = make_client(Goal=[])
        assert post(http, "syncGoals").json() == {"success": True, "updated": 0, "updates": []}


class TestUpdateGoalProgress:

    def _goal(self, **extra):
        g = {"id": "g1", "user_id": "u1", "title": "Total rounds", "status": "active",
             "target_value": 50, "current_value": 40, "metric_unit": "rounds"}
        g.update(extra)
        return g

    def test_progress_below_target(self, make_client):
        _, http = make_client(Goal=[self._goal()])
        body = post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 45}).json()
        assert body["completed"] is False
        assert body["goal"]["status"] == "active"

    def test_completion_posts_achievement(self, make_client):
        platform, http = make_client(Goal=[self._goal(circle_id="c1", is_public=True)])
        body = post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 50}).json()
        assert body["completed"] is True
        posts = platform.store["CircleMessage"]
        assert len(posts) == 1
        assert posts[0]["circle_id"] == "c1"
        assert "Dana Cruz just completed: **Total rounds**" in posts[0]["content"]

    def test_private_goal_not_announced(self, make_client):
        platform, http = make_client(Goal=[self._goal(circle_id="c1", is_public=False)])
        post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 55})
        assert "CircleMessage" not in platform.store

    def test_already_completed_goal_not_announced_again(self, make_client):
        platform, http = make_client(Goal=[self._goal(circle_id="c1", is_public=True, status="completed")])
        body = post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 70}).json()
        assert body["completed"] is True
        assert "CircleMessage" not in platform.store

    def test_goal_without_target_never_completes(self, make_client):
        goal = self._goal(circle_id="c1", is_public=True, title="Pushups")
        del goal["target_value"]
        platform, http = make_client(Goal=[goal])
        body = post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 3}).json()
        assert body["completed"] is False
        assert body["goal"]["status"] == "active"
        assert "CircleMessage" not in platform.store

    def test_announcement_failure_still_succeeds(self, make_client):
        platform, http = make_client(Goal=[self._goal(circle_id="c1", is_public=True)])
        platform.fail_on_create.add("CircleMessage")
        resp = post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 60})
        assert resp.status_code == 200
        assert resp.json()["completed"] is True

    def test_foreign_goal(self, make_client):
        _, http = make_client(Goal=[self._goal(user_id="u2")])
        resp = post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 60})
        assert resp.status_code == 403
        assert resp.json() == {"error": "Not authorized to update this goal"}

    def test_unknown_goal(self, make_client):
        _, http = make_client(Goal=[])
        assert post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 1}).status_code == 404

    def test_zero_is_a_valid_value(self, make_client):
        _, http = make_client(Goal=[self._goal()])
        assert post(http, "updateGoalProgress", {"goal_id": "g1", "new_value": 0}).status_code == 200

    def test_missing_value(self, make_client):
        _, http = make_client()
        resp = post(http, "updateGoalProgress", {"goal_id": "g1"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing goal_id or new_value"}


class TestCleanupBurnMessages:

    def test_deletes_expired(self, make_client):
        messages = [
            {"id": "a", "type": "burn", "created_date": hours_ago(30, now=datetime.now(timezone.utc))},
            {"id": "b", "type": "burn", "created_date": hours_ago(1, now=datetime.now(timezone.utc))},
        ]
        platform, http = make_client(user=None, CircleMessage=messages)
        body = post(http, "cleanupBurnMessages").json()
        assert body == {
            "success": True,
            "deleted": 1,
            "message": "Deleted 1 burn messages older than 24 hours",
        }
        assert [m["id"] for m in platform.store["CircleMessage"]] == ["b"]

    def test_failure_shape(self, make_client, monkeypatch):
        def boom(_client):
            raise RuntimeError("platform down")

        monkeypatch.setattr(api, "cleanup_burn_messages", boom)
        _, http = make_client(user=None)
        resp = post(http, "cleanupBurnMessages")
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "platform down"}


class TestReadinessEndpoints:

    def _boxing(self, hours):
        return {"user_id": "u1", "workout_type": "martial_arts", "session_type": "Boxing",
                "duration_minutes": 60,
                "created_date": hours_ago(hours, now=datetime.now(timezone.utc))}

    def test_latest_readiness(self, make_client):
        _, http = make_client(Workout=[self._boxing(10), dict(self._boxing(1), user_id="u2")])
        body = http.get("/api/v1/readiness").json()
        assert body["readiness"]["zones"]["lower_body"] == 100.0
        assert body["readiness"]["zones"]["upper_body"] == pytest.approx(60.0, abs=0.5)
        assert body["zone_status"]["lower_body"]["label"] == "Fresh"
        assert body["status"]["label"] in ("Moderate", "Fatigued")
        assert "text" in body["directive"]

    def test_readiness_requires_auth(self, make_client):
        _, http = make_client(user=None)
        assert http.get("/api/v1/readiness").status_code == 401

    def test_timeline_length(self, make_client):
        _, http = make_client(Workout=[self._boxing(3)])
        body = http.get("/api/v1/readiness/timeline", params={"days": 5}).json()
        assert len(body["timeline"]) == 6

    def test_timeline_days_bounds(self, make_client):
        _, http = make_client()
        assert http.get("/api/v1/readiness/timeline", params={"days": 0}).status_code == 400

    def test_coach_insights_shape(self, make_client):
        _, http = make_client(Workout=[self._boxing(10)], Goal=[])
        body = http.get("/api/v1/coach/insights").json()
        assert set(body) == {"insights", "nuggets", "correlations"}
        assert body["correlations"] == []
