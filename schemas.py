"""
Database Schemas for the client / task / timer tracker

Each Pydantic model maps to a MongoDB collection with the lowercase class name.
References to other collections are stored as the string form of their _id.
"""
from __future__ import annotations
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ClientStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


# Client metric counter for each task status
METRIC_FIELDS = {
    TaskStatus.PENDING.value: "metrics.tasks_pending",
    TaskStatus.IN_PROGRESS.value: "metrics.tasks_in_progress",
    TaskStatus.DONE.value: "metrics.tasks_done",
}


class ClientMetrics(BaseModel):
    tasks_pending: int = Field(0, ge=0)
    tasks_in_progress: int = Field(0, ge=0)
    tasks_done: int = Field(0, ge=0)


class Client(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    user_id: str = Field(..., description="Owner user id")
    name: str = Field(..., min_length=2, description="Client name")
    description: str = Field("", description="Short description")
    notes: str = Field("", description="Free-form notes")
    status: ClientStatus = Field(ClientStatus.ACTIVE, description="active | inactive | archived")
    tags: List[str] = Field(default_factory=list)
    metrics: ClientMetrics = Field(default_factory=ClientMetrics)
    last_activity: Optional[datetime] = Field(None, description="Last task or timer activity")


class Task(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    user_id: str = Field(..., description="Owner user id")
    title: str = Field(..., min_length=1, description="Task title")
    description: Optional[str] = Field(None, description="Task details")
    client_id: str = Field(..., description="Reference to client _id as string")
    priority: TaskPriority = Field(TaskPriority.MEDIUM)
    status: TaskStatus = Field(TaskStatus.PENDING, description="pending | in-progress | done")
    due_date: Optional[datetime] = None
    estimated_time: int = Field(0, ge=0, description="Estimate in minutes")
    actual_time: int = Field(0, ge=0, description="Tracked time in minutes")
    tracked_seconds: int = Field(0, ge=0, description="Timer seconds behind actual_time")
    is_high_impact: bool = False
    impact_score: int = Field(0, ge=0, le=100, description="Weights the completion reward")
    completed_at: Optional[datetime] = None
    rewarded_at: Optional[datetime] = Field(None, description="Set once when completion rewards are paid")


class Timer(BaseModel):
    user_id: str = Field(..., description="Owner user id")
    client_id: Optional[str] = Field(None, description="Reference to client _id as string")
    task_id: Optional[str] = Field(None, description="Reference to task _id as string")
    description: str = Field("", description="What is being worked on")
    billable: bool = Field(True)
    start_time: datetime = Field(..., description="Start datetime (UTC)")
    end_time: Optional[datetime] = Field(None, description="End datetime; null means the timer is open")
    duration: Optional[int] = Field(None, ge=0, description="Committed duration in seconds")
    is_running: bool = Field(True, description="Mirror of end_time is null, used by the open-timer index")


class Profitability(BaseModel):
    user_id: str = Field(..., description="Owner user id")
    client_id: str = Field(..., description="Reference to client _id as string")
    hourly_rate: float = Field(..., ge=0, description="Currency per hour")
    target_hours: float = Field(0, ge=0, description="Budget ceiling in hours")
    spent_hours: float = Field(0, ge=0, description="Cumulative committed hours")
    monthly_budget: float = Field(0, ge=0, description="Budget in currency")
    revenue: float = 0
    profitability_percentage: float = 0
    remaining_hours: float = 0


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address")
    api_token: Optional[str] = Field(None, description="Opaque bearer token")
    points: int = Field(0, ge=0)
    experience: int = Field(0, ge=0)
    level: int = Field(1, ge=1)
