#app/core/statuses.py
"""
Статусы проектов и этапов, типы записей журнала активности.

Начальный статус этапа один: ``not_started``. Все guard-проверки переходов
используют только его.
"""
from enum import Enum


class ProjectStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MilestoneStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class ActivityType(str, Enum):
    PROJECT_CREATED = "project_created"
    PROJECT_DELETED = "project_deleted"
    MILESTONE_STARTED = "milestone_started"
    MILESTONE_RESUMED = "milestone_resumed"
    MILESTONE_SUBMITTED = "milestone_submitted"
    MILESTONE_UPDATED = "milestone_updated"
    MILESTONE_APPROVED = "milestone_approved"
    MILESTONE_REJECTED = "milestone_rejected"
    MILESTONE_DELETED = "milestone_deleted"
    FILE_UPLOADED = "file_uploaded"
    FILES_DELETED = "files_deleted"
    REVIEW_SUBMITTED = "review_submitted"


# Проект, в котором можно начинать/возобновлять этапы
STARTABLE_PROJECT_STATUSES = (
    ProjectStatus.ACTIVE.value,
    ProjectStatus.IN_PROGRESS.value,
    ProjectStatus.PENDING.value,
)

# Этап с файлами в этих статусах можно "откатить" к работе
FILE_DELETABLE_STATUSES = (
    MilestoneStatus.IN_PROGRESS.value,
    MilestoneStatus.SUBMITTED.value,
)
