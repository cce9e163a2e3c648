import logging
import math
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone, timedelta
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pymongo.errors import DuplicateKeyError

from auth import get_current_user_id
from database import db, create_document, get_documents, transaction, ensure_indexes
from profitability import derive_metrics
from schemas import (
    Client, ClientStatus, METRIC_FIELDS, Profitability, Task, TaskPriority, TaskStatus, Timer,
)

logger = logging.getLogger(__name__)

# Percentage of tasks listed as high impact
HIGH_IMPACT_PERCENT = 20


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    yield


app = FastAPI(title="Client Timer API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Helper utilities

def to_object_id(id_str: str):
    from bson.objectid import ObjectId  # available via pymongo
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid id format")


def require_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_duration_seconds(start: datetime, end: Optional[datetime]) -> int:
    if end is None:
        end = utcnow()
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return max(0, int(round((end - start).total_seconds())))


def seconds_to_minutes(seconds: int) -> int:
    return (int(seconds) + 30) // 60


def completion_rewards(impact_score: int):
    """Points and experience earned by completing a task."""
    impact = impact_score or 0
    return int(10 + impact * 2), int(20 + impact * 3)


def serialize(doc: Optional[dict]):
    if not doc:
        return doc
    doc["_id"] = str(doc["_id"])
    doc.pop("api_token", None)
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def find_owned(collection: str, doc_id: str, user_id: str, session=None) -> dict:
    doc = db[collection].find_one({"_id": to_object_id(doc_id), "user_id": user_id}, session=session)
    if not doc:
        raise HTTPException(status_code=404, detail=f"{collection.capitalize()} not found")
    return doc


def clean_client_name(name: str) -> str:
    name = (name or "").strip()
    if len(name) < 2:
        raise HTTPException(status_code=400, detail="Client name must be at least 2 characters")
    return name


def move_task_metric(old_client_id: Optional[str], old_status: Optional[str],
                     new_client_id: Optional[str], new_status: Optional[str], session=None):
    now = utcnow()
    if old_client_id and old_status in METRIC_FIELDS:
        db["client"].update_one(
            {"_id": to_object_id(old_client_id)},
            {"$inc": {METRIC_FIELDS[old_status]: -1}, "$set": {"last_activity": now}},
            session=session,
        )
    if new_client_id and new_status in METRIC_FIELDS:
        db["client"].update_one(
            {"_id": to_object_id(new_client_id)},
            {"$inc": {METRIC_FIELDS[new_status]: 1}, "$set": {"last_activity": now}},
            session=session,
        )


# Request models

class ProfitabilityIn(BaseModel):
    hourly_rate: float = Field(..., ge=0)
    target_hours: float = Field(0, ge=0)
    monthly_budget: float = Field(0, ge=0)


class SpentHoursIn(BaseModel):
    spent_hours: float = Field(..., ge=0)
    increment_only: bool = False


class ClientIn(BaseModel):
    name: str
    description: str = ""
    notes: str = ""
    status: ClientStatus = ClientStatus.ACTIVE
    tags: List[str] = Field(default_factory=list)
    profitability: Optional[ProfitabilityIn] = None


class ClientUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[ClientStatus] = None
    tags: Optional[List[str]] = None


class TaskIn(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    client_id: str
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[datetime] = None
    estimated_time: int = Field(0, ge=0)
    is_high_impact: bool = False
    impact_score: int = Field(0, ge=0, le=100)


class TaskUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    title: Optional[str] = None
    description: Optional[str] = None
    client_id: Optional[str] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    estimated_time: Optional[int] = Field(None, ge=0)
    actual_time: Optional[int] = Field(None, ge=0)
    is_high_impact: Optional[bool] = None
    impact_score: Optional[int] = Field(None, ge=0, le=100)


class TaskImpactIn(BaseModel):
    impact_score: int = Field(..., ge=0, le=100)
    is_high_impact: Optional[bool] = None


class TaskCompleteIn(BaseModel):
    actual_time: Optional[int] = Field(None, ge=0)


class TimerIn(BaseModel):
    client_id: Optional[str] = None
    task_id: Optional[str] = None
    description: str = ""
    billable: bool = True


class TimerStopIn(BaseModel):
    duration: Optional[int] = Field(None, ge=0)


@app.get("/")
def read_root():
    return {"message": "Client Timer backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


# Users
@app.get("/api/users/me")
def get_me(user_id: str = Depends(get_current_user_id)):
    require_db()
    user = db["user"].find_one({"_id": to_object_id(user_id)})
    if not user:
        return {"_id": user_id, "points": 0, "experience": 0, "level": 1}
    user.setdefault("points", 0)
    user.setdefault("experience", 0)
    user.setdefault("level", 1)
    return serialize(user)


# Clients
@app.post("/api/clients", status_code=201)
def create_client(payload: ClientIn, user_id: str = Depends(get_current_user_id)):
    require_db()
    name = clean_client_name(payload.name)
    if db["client"].find_one({"user_id": user_id, "name": name}):
        raise HTTPException(status_code=409, detail="Client already exists")

    client = Client(
        user_id=user_id,
        name=name,
        description=payload.description.strip(),
        notes=payload.notes,
        status=payload.status,
        tags=payload.tags,
        last_activity=utcnow(),
    )
    with transaction() as session:
        client_id = create_document("client", client, session=session)
        if payload.profitability is not None:
            seed = payload.profitability
            record = Profitability(
                user_id=user_id,
                client_id=client_id,
                hourly_rate=seed.hourly_rate,
                target_hours=seed.target_hours,
                monthly_budget=seed.monthly_budget,
                **derive_metrics(seed.hourly_rate, seed.target_hours, 0),
            )
            create_document("profitability", record, session=session)

    logger.info("Client %s created for user %s", client_id, user_id)
    return serialize(db["client"].find_one({"_id": to_object_id(client_id)}))


@app.get("/api/clients")
def list_clients(q: Optional[str] = Query(None, description="Typeahead query"),
                 user_id: str = Depends(get_current_user_id)):
    require_db()
    flt = {"user_id": user_id}
    if q:
        flt["name"] = {"$regex": q, "$options": "i"}
    return [serialize(d) for d in get_documents("client", flt, sort=[("name", 1)])]


@app.get("/api/clients/{client_id}")
def get_client(client_id: str, user_id: str = Depends(get_current_user_id)):
    require_db()
    return serialize(find_owned("client", client_id, user_id))


@app.put("/api/clients/{client_id}")
def update_client(client_id: str, payload: ClientUpdate, user_id: str = Depends(get_current_user_id)):
    require_db()
    client = find_owned("client", client_id, user_id)
    update = payload.model_dump(exclude_unset=True)
    if "name" in update:
        update["name"] = clean_client_name(update["name"])
        clash = db["client"].find_one({"user_id": user_id, "name": update["name"], "_id": {"$ne": client["_id"]}})
        if clash:
            raise HTTPException(status_code=409, detail="Client already exists")
    if not update:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    update["updated_at"] = utcnow()
    db["client"].update_one({"_id": client["_id"]}, {"$set": update})
    return serialize(db["client"].find_one({"_id": client["_id"]}))


@app.delete("/api/clients/{client_id}")
def delete_client(client_id: str, user_id: str = Depends(get_current_user_id)):
    require_db()
    with transaction() as session:
        client = find_owned("client", client_id, user_id, session=session)
        db["client"].delete_one({"_id": client["_id"]}, session=session)
        deleted = db["task"].delete_many({"user_id": user_id, "client_id": client_id}, session=session)
        db["profitability"].delete_many({"user_id": user_id, "client_id": client_id}, session=session)
    logger.info("Client %s deleted with %d task(s)", client_id, deleted.deleted_count)
    return {"success": True, "deleted_tasks": deleted.deleted_count}


# Tasks
@app.post("/api/tasks", status_code=201)
def create_task(payload: TaskIn, user_id: str = Depends(get_current_user_id)):
    require_db()
    task = Task(user_id=user_id, **payload.model_dump())
    with transaction() as session:
        find_owned("client", payload.client_id, user_id, session=session)
        task_id = create_document("task", task, session=session)
        move_task_metric(None, None, task.client_id, task.status, session=session)

    logger.info("Task %s created for client %s", task_id, task.client_id)
    return serialize(db["task"].find_one({"_id": to_object_id(task_id)}))


@app.get("/api/tasks")
def list_tasks(client_id: Optional[str] = None, status: Optional[TaskStatus] = None,
               user_id: str = Depends(get_current_user_id)):
    require_db()
    flt = {"user_id": user_id}
    if client_id:
        flt["client_id"] = client_id
    if status:
        flt["status"] = status.value
    return [serialize(d) for d in get_documents("task", flt, sort=[("created_at", -1)])]


def top_impact(tasks: List[dict]) -> List[dict]:
    """The top 20% of tasks (rounded up) by impact score."""
    ranked = sorted(tasks, key=lambda t: t.get("impact_score", 0), reverse=True)
    return ranked[:math.ceil(len(ranked) * HIGH_IMPACT_PERCENT / 100)]


@app.get("/api/tasks/high-impact")
def list_high_impact_tasks(user_id: str = Depends(get_current_user_id)):
    require_db()
    open_tasks = get_documents("task", {"user_id": user_id, "status": {"$ne": TaskStatus.DONE.value}})
    names = {str(c["_id"]): c["name"] for c in get_documents("client", {"user_id": user_id})}
    result = []
    for task in top_impact(open_tasks):
        task["client_name"] = names.get(task.get("client_id"))
        result.append(serialize(task))
    return result


@app.get("/api/tasks/impact/client/{client_id}")
def get_client_impact(client_id: str, user_id: str = Depends(get_current_user_id)):
    require_db()
    find_owned("client", client_id, user_id)
    tasks = get_documents("task", {"user_id": user_id, "client_id": client_id})
    total = len(tasks)
    completed = sum(1 for t in tasks if t.get("status") == TaskStatus.DONE.value)
    return {
        "statistics": {
            "total_tasks": total,
            "completed_tasks": completed,
            "completion_rate": completed / total * 100 if total else 0,
            "average_impact": sum(t.get("impact_score", 0) for t in tasks) / total if total else 0,
        },
        "high_impact_tasks": [serialize(t) for t in top_impact(tasks)],
    }


@app.put("/api/tasks/{task_id}/impact")
def update_task_impact(task_id: str, payload: TaskImpactIn, user_id: str = Depends(get_current_user_id)):
    require_db()
    task = find_owned("task", task_id, user_id)
    fields = payload.model_dump(exclude_none=True)
    fields["updated_at"] = utcnow()
    db["task"].update_one({"_id": task["_id"]}, {"$set": fields})
    return serialize(db["task"].find_one({"_id": task["_id"]}))


@app.get("/api/tasks/{task_id}")
def get_task(task_id: str, user_id: str = Depends(get_current_user_id)):
    require_db()
    return serialize(find_owned("task", task_id, user_id))


@app.put("/api/tasks/{task_id}")
def update_task(task_id: str, payload: TaskUpdate, user_id: str = Depends(get_current_user_id)):
    require_db()
    update = payload.model_dump(exclude_unset=True)
    if not update:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    with transaction() as session:
        task = find_owned("task", task_id, user_id, session=session)
        old_client, old_status = task["client_id"], task["status"]
        new_client = update.get("client_id") or old_client
        new_status = update.get("status") or old_status
        if new_client != old_client:
            find_owned("client", new_client, user_id, session=session)
        if new_status == TaskStatus.DONE.value and old_status != new_status:
            update["completed_at"] = utcnow()
        elif new_status != TaskStatus.DONE.value:
            update["completed_at"] = None

        update["updated_at"] = utcnow()
        db["task"].update_one({"_id": task["_id"]}, {"$set": update}, session=session)
        if (new_client, new_status) != (old_client, old_status):
            move_task_metric(old_client, old_status, new_client, new_status, session=session)

    return serialize(db["task"].find_one({"_id": task["_id"]}))


@app.put("/api/tasks/{task_id}/complete")
def complete_task(task_id: str, payload: Optional[TaskCompleteIn] = None,
                  user_id: str = Depends(get_current_user_id)):
    require_db()
    now = utcnow()
    with transaction() as session:
        task = find_owned("task", task_id, user_id, session=session)
        if task["status"] == TaskStatus.DONE.value:
            raise HTTPException(status_code=409, detail="Task already completed")

        actual_time = task.get("actual_time", 0)
        if payload is not None and payload.actual_time is not None:
            actual_time = payload.actual_time
        # Rewards are paid on the first completion only; reopening does not re-arm them
        already_rewarded = task.get("rewarded_at") is not None
        fields = {"status": TaskStatus.DONE.value, "completed_at": now, "actual_time": actual_time, "updated_at": now}
        if not already_rewarded:
            fields["rewarded_at"] = now
        db["task"].update_one({"_id": task["_id"]}, {"$set": fields}, session=session)
        move_task_metric(task["client_id"], task["status"], task["client_id"], TaskStatus.DONE.value,
                         session=session)

        user_oid = to_object_id(user_id)
        if already_rewarded:
            points, experience = 0, 0
        else:
            points, experience = completion_rewards(task.get("impact_score", 0))
            db["user"].update_one({"_id": user_oid}, {"$inc": {"points": points, "experience": experience}},
                                  upsert=True, session=session)
        user = db["user"].find_one({"_id": user_oid}, session=session) or {}
        level = user.get("level", 1)
        level_up = False
        while user.get("experience", 0) >= level * 100:
            level += 1
            level_up = True
        if level_up:
            db["user"].update_one({"_id": user_oid}, {"$set": {"level": level}}, session=session)

    logger.info("Task %s completed: +%d points, +%d experience", task_id, points, experience)
    return {
        "task": serialize(db["task"].find_one({"_id": task["_id"]})),
        "rewards": {"points": points, "experience": experience, "level_up": level_up, "level": level},
    }


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: str, user_id: str = Depends(get_current_user_id)):
    require_db()
    with transaction() as session:
        task = find_owned("task", task_id, user_id, session=session)
        move_task_metric(task["client_id"], task["status"], None, None, session=session)
        db["task"].delete_one({"_id": task["_id"]}, session=session)
    return {"success": True}


# Timers
@app.post("/api/timers", status_code=201)
def create_timer(payload: TimerIn, user_id: str = Depends(get_current_user_id)):
    require_db()
    if not payload.client_id and not payload.task_id:
        raise HTTPException(status_code=400, detail="client_id or task_id is required")

    client_id = payload.client_id or None
    if payload.task_id:
        task = find_owned("task", payload.task_id, user_id)
        client_id = client_id or task.get("client_id")
    if client_id:
        find_owned("client", client_id, user_id)

    if db["timer"].count_documents({"user_id": user_id, "end_time": None}) > 0:
        raise HTTPException(status_code=409, detail="A timer is already running")

    timer = Timer(
        user_id=user_id,
        client_id=client_id,
        task_id=payload.task_id or None,
        description=payload.description,
        billable=payload.billable,
        start_time=utcnow(),
    )
    try:
        timer_id = create_document("timer", timer)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="A timer is already running")

    logger.info("Timer %s started for user %s", timer_id, user_id)
    return serialize(db["timer"].find_one({"_id": to_object_id(timer_id)}))


@app.get("/api/timers")
def list_timers(user_id: str = Depends(get_current_user_id)):
    require_db()
    docs = get_documents("timer", {"user_id": user_id}, sort=[("start_time", -1)])
    return [serialize(d) for d in docs]


@app.get("/api/timers/running")
def get_running_timer(user_id: str = Depends(get_current_user_id)):
    require_db()
    doc = db["timer"].find_one({"user_id": user_id, "end_time": None}, sort=[("start_time", -1)])
    return serialize(doc)


@app.get("/api/timers/summary")
def get_timer_summary(user_id: str = Depends(get_current_user_id)):
    require_db()
    # Stored datetimes are naive UTC
    now = utcnow().replace(tzinfo=None)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = day_start - timedelta(days=day_start.weekday())
    month_start = day_start.replace(day=1)
    if month_start.month == 1:
        prev_month_start = month_start.replace(year=month_start.year - 1, month=12)
    else:
        prev_month_start = month_start.replace(month=month_start.month - 1)
    if month_start.month == 12:
        next_month_start = month_start.replace(year=month_start.year + 1, month=1)
    else:
        next_month_start = month_start.replace(month=month_start.month + 1)

    ranges = {
        "today": (day_start, day_start + timedelta(days=1)),
        "week": (week_start, week_start + timedelta(days=7)),
        "month": (month_start, next_month_start),
        "prev_month": (prev_month_start, month_start),
    }

    result = {}
    for key, (start, end) in ranges.items():
        cursor = db["timer"].find({"user_id": user_id, "start_time": {"$gte": start, "$lt": end}})
        total = 0
        for d in cursor:
            if d.get("duration") is not None:
                total += d["duration"]
            else:
                total += compute_duration_seconds(d["start_time"], d.get("end_time"))
        result[key] = total

    return result


@app.get("/api/timers/{timer_id}")
def get_timer(timer_id: str, user_id: str = Depends(get_current_user_id)):
    require_db()
    return serialize(find_owned("timer", timer_id, user_id))


@app.put("/api/timers/stop/{timer_id}")
def stop_timer(timer_id: str, payload: Optional[TimerStopIn] = None,
               user_id: str = Depends(get_current_user_id)):
    require_db()
    end = utcnow()
    with transaction() as session:
        timer = find_owned("timer", timer_id, user_id, session=session)
        if timer.get("end_time") is not None:
            raise HTTPException(status_code=409, detail="Timer already stopped")

        if payload is not None and payload.duration is not None:
            duration = payload.duration
        else:
            duration = compute_duration_seconds(timer["start_time"], end)

        db["timer"].update_one(
            {"_id": timer["_id"]},
            {"$set": {"end_time": end, "duration": duration, "is_running": False, "updated_at": end}},
            session=session,
        )
        if timer.get("task_id") and duration > 0:
            task_filter = {"_id": to_object_id(timer["task_id"]), "user_id": user_id}
            task = db["task"].find_one(task_filter, {"tracked_seconds": 1}, session=session)
            if task:
                # Minutes follow the task's accumulated seconds so short segments are not lost
                tracked = task.get("tracked_seconds", 0)
                minutes = seconds_to_minutes(tracked + duration) - seconds_to_minutes(tracked)
                db["task"].update_one(
                    task_filter,
                    {"$inc": {"tracked_seconds": duration, "actual_time": minutes}, "$set": {"updated_at": end}},
                    session=session,
                )
        if timer.get("client_id"):
            db["client"].update_one(
                {"_id": to_object_id(timer["client_id"]), "user_id": user_id},
                {"$set": {"last_activity": end}},
                session=session,
            )

    logger.info("Timer %s stopped after %ss", timer_id, duration)
    return serialize(db["timer"].find_one({"_id": timer["_id"]}))


@app.delete("/api/timers/{timer_id}")
def delete_timer(timer_id: str, user_id: str = Depends(get_current_user_id)):
    require_db()
    timer = find_owned("timer", timer_id, user_id)
    db["timer"].delete_one({"_id": timer["_id"]})
    return {"success": True}


# Profitability
def serialize_profitability(doc: dict) -> dict:
    client = db["client"].find_one({"_id": to_object_id(doc["client_id"])}, {"name": 1})
    doc["client_name"] = client.get("name") if client else None
    return serialize(doc)


def find_profitability(client_id: str, user_id: str, session=None) -> dict:
    doc = db["profitability"].find_one({"user_id": user_id, "client_id": client_id}, session=session)
    if not doc:
        raise HTTPException(status_code=404, detail="No profitability data for this client")
    return doc


@app.get("/api/profitability")
def list_profitability(user_id: str = Depends(get_current_user_id)):
    require_db()
    return [serialize_profitability(d) for d in get_documents("profitability", {"user_id": user_id})]


@app.get("/api/profitability/summary")
def get_profitability_summary(user_id: str = Depends(get_current_user_id)):
    require_db()
    docs = get_documents("profitability", {"user_id": user_id})
    count = len(docs)
    return {
        "total_clients": count,
        "overall_revenue": sum(d.get("revenue", 0) for d in docs),
        "total_spent_hours": sum(d.get("spent_hours", 0) for d in docs),
        "total_target_hours": sum(d.get("target_hours", 0) for d in docs),
        "over_budget_clients": sum(1 for d in docs if d.get("target_hours", 0) > 0 and d.get("remaining_hours", 0) < 0),
        "average_profitability_percentage": (
            sum(d.get("profitability_percentage", 0) for d in docs) / count if count else 0
        ),
    }


@app.get("/api/profitability/client/{client_id}")
def get_client_profitability(client_id: str, user_id: str = Depends(get_current_user_id)):
    require_db()
    return serialize_profitability(find_profitability(client_id, user_id))


@app.post("/api/profitability/client/{client_id}")
def upsert_client_profitability(client_id: str, payload: ProfitabilityIn,
                                user_id: str = Depends(get_current_user_id)):
    require_db()
    now = utcnow()
    with transaction() as session:
        client = find_owned("client", client_id, user_id, session=session)
        existing = db["profitability"].find_one({"user_id": user_id, "client_id": client_id}, session=session)
        spent = existing.get("spent_hours", 0) if existing else 0
        fields = payload.model_dump()
        fields.update(derive_metrics(payload.hourly_rate, payload.target_hours, spent))

        if existing:
            fields["updated_at"] = now
            db["profitability"].update_one({"_id": existing["_id"]}, {"$set": fields}, session=session)
        else:
            create_document("profitability", Profitability(user_id=user_id, client_id=client_id, **fields),
                            session=session)
        db["client"].update_one({"_id": client["_id"]}, {"$set": {"last_profitability_update": now}},
                                session=session)

    return get_client_profitability(client_id, user_id)


@app.put("/api/profitability/client/{client_id}/spent-hours")
def update_spent_hours(client_id: str, payload: SpentHoursIn, user_id: str = Depends(get_current_user_id)):
    require_db()
    record = find_profitability(client_id, user_id)
    if payload.increment_only:
        spent = record.get("spent_hours", 0) + payload.spent_hours
    else:
        spent = payload.spent_hours

    fields = derive_metrics(record.get("hourly_rate", 0), record.get("target_hours", 0), spent)
    fields["updated_at"] = utcnow()
    if payload.increment_only:
        update = {"$inc": {"spent_hours": payload.spent_hours}, "$set": fields}
    else:
        fields["spent_hours"] = spent
        update = {"$set": fields}
    db["profitability"].update_one({"_id": record["_id"]}, update)

    logger.info("Client %s spent hours now %.4f", client_id, spent)
    return serialize_profitability(db["profitability"].find_one({"_id": record["_id"]}))


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
