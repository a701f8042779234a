# backend/models/__init__.py

from .base import db, ValidationError

# --- Model Import Order ---
# Users first; every other table references them.

# 1. Foundational Models
from .user import User, ROLES, LANGUAGES

# 2. Core Marketplace Models
from .project import Project, PROJECT_STATUSES, MANUAL_TRANSITIONS
from .bid import Bid, BID_STATUSES, EDITABLE_BID_FIELDS
from .task import Task, TASK_STATUSES, TASK_PRIORITIES, EDITABLE_TASK_FIELDS
from .material import Material, EDITABLE_MATERIAL_FIELDS

# 3. Communication and Dispute Models
from .message import Message, MESSAGE_TYPES
from .dispute import Dispute, DISPUTE_STATUSES, OPEN_DISPUTE_STATUSES

__all__ = [
    'db',
    'ValidationError',
    'User',
    'ROLES',
    'LANGUAGES',
    'Project',
    'PROJECT_STATUSES',
    'MANUAL_TRANSITIONS',
    'Bid',
    'BID_STATUSES',
    'EDITABLE_BID_FIELDS',
    'Task',
    'TASK_STATUSES',
    'TASK_PRIORITIES',
    'EDITABLE_TASK_FIELDS',
    'Material',
    'EDITABLE_MATERIAL_FIELDS',
    'Message',
    'MESSAGE_TYPES',
    'Dispute',
    'DISPUTE_STATUSES',
    'OPEN_DISPUTE_STATUSES',
]
