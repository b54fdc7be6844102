"""
FastAPI backend for the NOVA app's serverless functions.

Every function is a bearer-authenticated ``POST /functions/<name>`` taking
a JSON body and answering JSON; failures answer ``{"error": message}``.
Persistence is delegated to the hosted platform (platform_client.py);
shared utilities live in routes/helpers.py.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

import config
from circle_messages import achievement_message, cleanup_burn_messages
from coach_insights import coach_nuggets, fatigue_correlations, generate_insights
from email_notifier import notify_circle_members
from goal_sync import is_goal_completed, sync_user_goals
from platform_client import PlatformClient
from readiness import (
    calculate_readiness,
    daily_directive,
    get_readiness_status,
    readiness_timeline,
    zone_status,
)
from routes.helpers import (
    FunctionError,
    _first,
    _internal_error,
    _public_profile,
    _require_user,
)

log = logging.getLogger("api")

_limiter = Limiter(key_func=get_remote_address)


# ─── App setup ─────────────────────────────────────────────

app = FastAPI(title="NOVA Functions API", version="1.0.0")

app.state.limiter = _limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.FRONTEND_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(FunctionError)
def _function_error_handler(_request: Request, exc: FunctionError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
def _validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "invalid value") if errors else "invalid value"
    return JSONResponse(status_code=400, content={"error": f"Invalid request body: {detail}"})


def get_client(request: Request) -> PlatformClient:
    """Platform client carrying the caller's bearer token."""
    return PlatformClient.from_request(request)


# ─── Request bodies ────────────────────────────────────────

class DeleteWorkoutRequest(BaseModel):
    workoutId: Optional[str] = None


class RemoveFriendRequest(BaseModel):
    friendId: Optional[str] = None


class SearchUserRequest(BaseModel):
    searchBy: Optional[str] = None
    query: Optional[str] = None


class GetUsersByIdsRequest(BaseModel):
    userIds: Optional[List[Any]] = None


class MessageNotificationRequest(BaseModel):
    circleId: Optional[str] = None
    messageId: Optional[str] = None
    mentions: Optional[List[Any]] = None


class UpdateGoalProgressRequest(BaseModel):
    goal_id: Optional[str] = None
    new_value: Optional[float] = None


# ─── Routes ────────────────────────────────────────────────

@app.get("/")
def root() -> Dict[str, Any]:
    return {"service": "nova-functions", "status": "ok"}


@app.get("/health-check")
def health_check() -> Dict[str, Any]:
    return {"status": "Online", "platform": config.PLATFORM_API_URL, "app_id_set": bool(config.PLATFORM_APP_ID)}


@app.post("/functions/deleteWorkout")
def delete_workout(body: DeleteWorkoutRequest, client: PlatformClient = Depends(get_client)) -> Dict[str, Any]:
    try:
        user = _require_user(client)
        if not body.workoutId:
            raise FunctionError(400, "Missing workoutId")

        workouts = client.entities.Workout.list("-created_date", 1000)
        workout = next((w for w in workouts if w.get("id") == body.workoutId), None)
        if not workout:
            raise FunctionError(404, "Workout not found")

        if workout.get("user_id") != user.get("id") and user.get("role") != "admin":
            raise FunctionError(403, "Forbidden: You can only delete your own workouts")

        client.entities.Workout.delete(body.workoutId)
        log.info("Workout %s deleted by %s", body.workoutId, user.get("id"))
        return {"success": True, "message": "Workout deleted successfully"}
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error deleting workout")


@app.post("/functions/removeFriend")
def remove_friend(body: RemoveFriendRequest, client: PlatformClient = Depends(get_client)) -> Dict[str, Any]:
    try:
        user = _require_user(client)
        if not body.friendId:
            raise FunctionError(400, "Missing friendId")

        sent = client.entities.Friend.filter({"user_id": user["id"], "friend_id": body.friendId})
        received = client.entities.Friend.filter({"user_id": body.friendId, "friend_id": user["id"]})
        friendship = _first(sent) or _first(received)
        if not friendship:
            raise FunctionError(404, "Friendship not found")

        client.entities.Friend.delete(friendship["id"])
        return {"success": True, "message": "Friend removed successfully"}
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error removing friend")


@app.post("/functions/searchUser")
@_limiter.limit(config.SEARCH_RATE_LIMIT)
def search_user(
    request: Request,
    body: SearchUserRequest,
    client: PlatformClient = Depends(get_client),
) -> Dict[str, Any]:
    try:
        _require_user(client)
        if not body.searchBy or not body.query:
            raise FunctionError(400, "Missing searchBy or query")

        field = "username" if body.searchBy == "username" else "email"
        users = client.as_service_role().entities.User.filter(
            {field: body.query.lower()}, "-created_date", 1
        )
        found = _first(users)
        if not found:
            raise FunctionError(404, f"User not found with {body.searchBy}: {body.query}")
        return _public_profile(found)
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error searching user")


@app.post("/functions/getUsersByIds")
def get_users_by_ids(body: GetUsersByIdsRequest, client: PlatformClient = Depends(get_client)) -> Dict[str, Any]:
    try:
        _require_user(client)
        if not body.userIds:
            raise FunctionError(400, "Missing or invalid userIds array")

        users = client.as_service_role().entities.User.list("-created_date", 500)
        return {"users": [_public_profile(u, with_trust=True) for u in users if u.get("id") in body.userIds]}
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error fetching users")


@app.post("/functions/sendMessageNotification")
def send_message_notification(
    body: MessageNotificationRequest,
    client: PlatformClient = Depends(get_client),
) -> Dict[str, Any]:
    try:
        user = _require_user(client)
        if not body.circleId or not body.messageId:
            raise FunctionError(400, "Missing circleId or messageId")

        service = client.as_service_role()
        message = _first(service.entities.CircleMessage.filter({"id": body.messageId}, "-created_date", 1))
        if not message:
            raise FunctionError(404, "Message not found")

        circle = _first(service.entities.Circle.filter({"id": body.circleId}, "-created_date", 1))
        if not circle:
            raise FunctionError(404, "Circle not found")

        counts = notify_circle_members(service, user, circle, message, body.mentions)
        return {"success": True, **counts}
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Notification error")


@app.post("/functions/syncGoals")
def sync_goals_endpoint(client: PlatformClient = Depends(get_client)) -> Dict[str, Any]:
    try:
        user = _require_user(client)
        updates = sync_user_goals(client, user)
        return {
            "success": True,
            "updated": len(updates),
            "updates": [u.to_dict() for u in updates],
        }
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error syncing goals")


@app.post("/functions/updateGoalProgress")
def update_goal_progress(
    body: UpdateGoalProgressRequest,
    client: PlatformClient = Depends(get_client),
) -> Dict[str, Any]:
    try:
        user = _require_user(client)
        if not body.goal_id or body.new_value is None:
            raise FunctionError(400, "Missing goal_id or new_value")

        goal = _first(client.entities.Goal.filter({"id": body.goal_id}))
        if not goal:
            raise FunctionError(404, "Goal not found")
        if goal.get("user_id") != user.get("id"):
            raise FunctionError(403, "Not authorized to update this goal")

        completed = is_goal_completed(goal, body.new_value, missing_target_met=False)
        updated = client.entities.Goal.update(body.goal_id, {
            "current_value": body.new_value,
            "status": "completed" if completed else "active",
        })

        if completed and goal.get("circle_id") and goal.get("is_public") and goal.get("status") != "completed":
            try:
                client.entities.CircleMessage.create(achievement_message(user, goal, body.new_value))
            except Exception as e:
                log.error("Failed to post achievement to circle %s: %s", goal.get("circle_id"), e)

        return {"success": True, "goal": updated, "completed": completed}
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error updating goal")


@app.post("/functions/cleanupBurnMessages")
def cleanup_burn_messages_endpoint(client: PlatformClient = Depends(get_client)) -> JSONResponse:
    try:
        deleted = cleanup_burn_messages(client.as_service_role())
        return JSONResponse({
            "success": True,
            "deleted": deleted,
            "message": f"Deleted {deleted} burn messages older than 24 hours",
        })
    except Exception as e:
        log.error("Cleanup error: %s", e, exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})


# ─── Readiness + coaching reads ────────────────────────────

@app.get("/api/v1/readiness")
def readiness_latest(client: PlatformClient = Depends(get_client)) -> Dict[str, Any]:
    try:
        user = _require_user(client)
        workouts = client.entities.Workout.filter({"user_id": user["id"]}, "-created_date", 50)
        readiness = calculate_readiness(workouts)
        return {
            "readiness": readiness,
            "status": get_readiness_status(readiness["overall"]),
            "zone_status": {z: zone_status(s) for z, s in readiness["zones"].items()},
            "directive": daily_directive(readiness),
        }
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error computing readiness")


@app.get("/api/v1/readiness/timeline")
def readiness_history(
    days: int = Query(default=14, ge=1, le=90),
    client: PlatformClient = Depends(get_client),
) -> Dict[str, Any]:
    try:
        user = _require_user(client)
        workouts = client.entities.Workout.filter({"user_id": user["id"]}, "-created_date", 200)
        return readiness_timeline(workouts, days=days)
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error computing readiness timeline")


@app.get("/api/v1/coach/insights")
def coach_insights_latest(client: PlatformClient = Depends(get_client)) -> Dict[str, Any]:
    try:
        user = _require_user(client)
        workouts = client.entities.Workout.filter({"user_id": user["id"]}, "-created_date", 100)
        goals = client.entities.Goal.filter({"user_id": user["id"]}, "-updated_date", 100)
        return {
            "insights": generate_insights(user, workouts, goals),
            "nuggets": coach_nuggets(user, workouts, goals),
            "correlations": fatigue_correlations(workouts),
        }
    except FunctionError:
        raise
    except Exception as e:
        raise _internal_error(e, "Error generating coach insights")
