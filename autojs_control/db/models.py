"""SQLAlchemy ORM models."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from autojs_control.core.clock import utcnow
from autojs_control.infrastructure.database.base import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class DeviceGroup(Base):
    __tablename__ = "device_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    devices = relationship("Device", back_populates="group")


class Device(Base):
    __tablename__ = "devices"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    device_code = Column(String(64), unique=True, nullable=False, index=True)
    device_name = Column(String(100))
    certificate = Column(String(128), nullable=False)
    auto_js_version = Column(String(50))
    group_id = Column(Integer, ForeignKey("device_groups.id"), nullable=True, index=True)
    device_info = Column(Text)
    is_online = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    last_online_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    group = relationship("DeviceGroup", back_populates="devices")


class Script(Base):
    __tablename__ = "scripts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False, index=True)
    version = Column(String(50))
    content = Column(Text)
    timeout = Column(Integer, nullable=False, default=300)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    task_type = Column(String(20), nullable=False, default="immediate")
    target_type = Column(String(20), nullable=False, default="specific")
    target_device_ids = Column(Text)
    target_group_id = Column(Integer, ForeignKey("device_groups.id"), nullable=True)
    script_id = Column(Integer, ForeignKey("scripts.id"), nullable=False, index=True)
    parameters = Column(Text)
    priority = Column(Integer, nullable=False, default=5)
    max_retries = Column(Integer, nullable=False, default=0)
    retry_count = Column(Integer, nullable=False, default=0)
    retry_cancelled = Column(Boolean, nullable=False, default=False)
    scheduled_time = Column(DateTime(timezone=True))
    recurrence_interval = Column(Integer)
    last_execution_time = Column(DateTime(timezone=True))
    status = Column(String(30), nullable=False, default="pending", index=True)
    total_devices = Column(Integer, nullable=False, default=0)
    success_devices = Column(Integer, nullable=False, default=0)
    failed_devices = Column(Integer, nullable=False, default=0)
    failure_reason = Column(Text)
    start_time = Column(DateTime(timezone=True))
    end_time = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    script = relationship("Script")
    target_group = relationship("DeviceGroup")
    targets = relationship("TaskTarget", back_populates="task", cascade="all, delete-orphan")


class TaskTarget(Base):
    """One fanned-out instruction of a task occurrence for a single device."""

    __tablename__ = "task_targets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    device_code = Column(String(64), nullable=False, index=True)
    instruction_id = Column(String(64), nullable=False, unique=True, index=True)
    correlation_id = Column(String(64), nullable=False, index=True)
    attempt = Column(Integer, nullable=False, default=1)
    timeout = Column(Integer, nullable=False, default=300)
    status = Column(String(20), nullable=False, default="pending")
    superseded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    sent_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    task = relationship("Task", back_populates="targets")


class ScriptExecutionRecord(Base):
    __tablename__ = "script_execution_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    instruction_id = Column(String(64), nullable=False, unique=True, index=True)
    device_code = Column(String(64), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True, index=True)
    script_id = Column(Integer, ForeignKey("scripts.id"), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    start_time = Column(DateTime(timezone=True))
    end_time = Column(DateTime(timezone=True))
    duration = Column(Float)
    output = Column(Text)
    error_message = Column(Text)
    execution_metrics = Column(Text)
    screenshots = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
