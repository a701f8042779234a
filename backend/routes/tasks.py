# backend/routes/tasks.py
from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from sqlalchemy import case
import logging

from models import db, Task, Project, User, ValidationError, TASK_STATUSES, EDITABLE_TASK_FIELDS
from middleware.auth import roles_required
from middleware.errors import handle_write_errors, server_error, validation_error, not_found, forbidden, error_response, UploadError
from routes.utils import get_json_body, require_fields, apply_fields, parse_int
from services.date_utils import parse_datetime
from services.file_utils import save_uploads, DOCUMENT_EXTENSIONS
from services.realtime import notify_user, notify_project

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

DATE_FIELDS = ('start_date', 'due_date')
# What an assignee who is not the project contractor may change
ASSIGNEE_FIELDS = ('status', 'description', 'attachments')

PRIORITY_ORDER = case(
    (Task.priority == 'high', 0),
    (Task.priority == 'medium', 1),
    else_=2
)


def _resolve_assignee(assigned_to):
    if assigned_to in (None, ''):
        return None
    user = db.session.get(User, parse_int(assigned_to, 'assigned_to'))
    if user is None or not user.is_active:
        return False
    return user.id


def _validate_dependencies(dependencies, project_id, task_id=None):
    """Dependencies must be other tasks of the same project"""
    if not dependencies:
        return []
    if not isinstance(dependencies, list):
        raise ValidationError('dependencies must be a list of task ids', 'dependencies')
    ids = [parse_int(value, 'dependencies') for value in dependencies]
    if task_id is not None and task_id in ids:
        raise ValidationError('A task cannot depend on itself', 'dependencies')
    found = Task.query.filter(Task.id.in_(ids), Task.project_id == project_id).count()
    if found != len(set(ids)):
        raise ValidationError('dependencies must reference tasks of the same project', 'dependencies')
    return ids


def _complete_project_if_done(project):
    """An in-progress project whose tasks are all completed becomes completed"""
    if project.status != 'in_progress':
        return False
    remaining = project.tasks.filter(Task.status != 'completed').count()
    if remaining or project.tasks.count() == 0:
        return False
    project.status = 'completed'
    logger.info(f"All tasks completed; project {project.id} marked completed")
    return True


def _broadcast_task(task, project_completed=False):
    payload = task.to_dict()
    notify_project(task.project_id, 'task_updated', payload)
    if task.assigned_to:
        notify_user(task.assigned_to, 'task_updated', payload)
    if project_completed:
        notify_project(task.project_id, 'project_updated', task.project.to_dict())


def _can_view_task(task, user):
    return task.assigned_to == user.id or task.project.is_owner(user)


@tasks_bp.route('', methods=['POST'])
@roles_required('contractor')
def create_task():
    try:
        data = get_json_body()
        require_fields(data, 'project_id', 'title')

        project = db.session.get(Project, parse_int(data['project_id'], 'project_id'))
        if not project:
            return not_found('Project')
        if project.contractor_id != current_user.id:
            return forbidden('Not authorized to add tasks to this project')

        assignee_id = _resolve_assignee(data.get('assigned_to'))
        if assignee_id is False:
            return not_found('Assignee')

        task = Task(
            project_id=project.id,
            title=data['title'],
            description=data.get('description'),
            priority=data.get('priority') or 'medium',
            start_date=parse_datetime(data.get('start_date'), 'start_date'),
            due_date=parse_datetime(data.get('due_date'), 'due_date'),
            assigned_to=assignee_id,
            dependencies=_validate_dependencies(data.get('dependencies'), project.id),
            attachments=data.get('attachments') or [],
            status='pending',
            progress=0
        )

        db.session.add(task)
        db.session.commit()

        logger.info(f"Task {task.id} created on project {project.id}")
        _broadcast_task(task)
        return jsonify(task.to_dict()), 201

    except Exception as e:
        return handle_write_errors(e, 'Failed to create task')


@tasks_bp.route('', methods=['GET'])
@login_required
def get_tasks():
    """Tasks visible to the caller, by due date (undated last) then priority"""
    try:
        project_id = parse_int(request.args.get('project_id'), 'project_id')
        status = request.args.get('status')
        if status and status not in TASK_STATUSES:
            return error_response(f"Invalid status filter: {status}", 400)

        query = Task.query
        if current_user.role == 'subcontractor':
            query = query.filter(Task.assigned_to == current_user.id)
        elif current_user.role == 'contractor':
            query = query.join(Project).filter(Project.contractor_id == current_user.id)
        elif current_user.role == 'customer':
            query = query.join(Project).filter(Project.customer_id == current_user.id)
        else:
            return jsonify([])

        if project_id is not None:
            query = query.filter(Task.project_id == project_id)
        if status:
            query = query.filter(Task.status == status)

        tasks = query.order_by(
            Task.due_date.is_(None), Task.due_date.asc(), PRIORITY_ORDER, Task.id.asc()
        ).all()
        return jsonify([task.to_dict(include_project=True) for task in tasks])

    except ValidationError as e:
        return validation_error(e)
    except Exception as e:
        logger.error(f"Error retrieving tasks: {str(e)}")
        return server_error('Failed to retrieve tasks', e)


@tasks_bp.route('/<int:task_id>', methods=['GET'])
@login_required
def get_task(task_id):
    try:
        task = db.session.get(Task, task_id)
        if not task:
            return not_found('Task')
        if not _can_view_task(task, current_user):
            return forbidden('Not authorized to view this task')

        return jsonify(task.to_dict(include_project=True))

    except Exception as e:
        logger.error(f"Error retrieving task {task_id}: {str(e)}")
        return server_error('Failed to retrieve task', e)


@tasks_bp.route('/<int:task_id>', methods=['PUT'])
@login_required
def update_task(task_id):
    """Edit a task. Completing the last open task of a running project completes the project."""
    try:
        task = db.session.get(Task, task_id)
        if not task:
            return not_found('Task')
        project = task.project
        if current_user.id not in (project.contractor_id, task.assigned_to):
            return forbidden('Not authorized to update this task')

        data = get_json_body()

        if current_user.id != project.contractor_id:
            restricted = [field for field in EDITABLE_TASK_FIELDS
                          if field in data and field not in ASSIGNEE_FIELDS]
            if restricted:
                logger.warning(f"Assignee {current_user.id} attempted to change {restricted} on task {task.id}")
                return forbidden(f"Only the project contractor can change: {', '.join(restricted)}")

        if 'assigned_to' in data:
            assignee_id = _resolve_assignee(data['assigned_to'])
            if assignee_id is False:
                return not_found('Assignee')
            data['assigned_to'] = assignee_id
        if 'dependencies' in data:
            data['dependencies'] = _validate_dependencies(data['dependencies'], project.id, task.id)

        fields = [field for field in EDITABLE_TASK_FIELDS if field != 'status']
        changed = apply_fields(task, data, fields, DATE_FIELDS)
        if 'status' in data:
            task.set_status(data['status'])
            changed.append('status')

        project_completed = _complete_project_if_done(project) if task.status == 'completed' else False
        db.session.commit()

        logger.info(f"Task {task.id} updated by user {current_user.id}: {changed}")
        _broadcast_task(task, project_completed)
        return jsonify(task.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to update task')


@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@login_required
def delete_task(task_id):
    try:
        task = db.session.get(Task, task_id)
        if not task:
            return not_found('Task')
        if task.project.contractor_id != current_user.id:
            return forbidden('Not authorized to delete this task')

        dependents = task.project.tasks.filter(Task.id != task.id).all()
        for other in dependents:
            if task.id in (other.dependencies or []):
                other.dependencies = [dep for dep in other.dependencies if dep != task.id]

        db.session.delete(task)
        db.session.commit()

        logger.info(f"Task {task_id} deleted by contractor {current_user.id}")
        return jsonify({'message': 'Task deleted successfully'})

    except Exception as e:
        return handle_write_errors(e, 'Failed to delete task')


@tasks_bp.route('/<int:task_id>/progress', methods=['PATCH'])
@login_required
def update_progress(task_id):
    """Report progress (0-100). Reaching 100 completes the task."""
    try:
        task = db.session.get(Task, task_id)
        if not task:
            return not_found('Task')
        if task.assigned_to != current_user.id:
            return forbidden('Only the assignee can report progress')

        data = get_json_body()
        if 'progress' not in data:
            raise ValidationError('progress is required', 'progress')

        task.apply_progress(data['progress'])
        project_completed = _complete_project_if_done(task.project) if task.status == 'completed' else False
        db.session.commit()

        logger.info(f"Task {task.id} progress set to {task.progress} ({task.status})")
        _broadcast_task(task, project_completed)
        return jsonify(task.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to update task progress')


@tasks_bp.route('/<int:task_id>/attachments', methods=['POST'])
@login_required
def upload_attachments(task_id):
    try:
        task = db.session.get(Task, task_id)
        if not task:
            return not_found('Task')
        if current_user.id not in (task.project.contractor_id, task.assigned_to):
            return forbidden('Not authorized to add attachments to this task')

        files = [f for f in request.files.getlist('attachments') if f and f.filename]
        if not files:
            raise UploadError('No files provided')
        max_files = current_app.config['MAX_TASK_ATTACHMENTS']
        if len(files) > max_files:
            raise UploadError(f"At most {max_files} attachments can be uploaded at once")

        urls = save_uploads(
            files, 'tasks', prefix=f"task-{task.id}",
            max_bytes=current_app.config['ATTACHMENT_MAX_BYTES'],
            allowed_extensions=DOCUMENT_EXTENSIONS
        )
        task.attachments = list(task.attachments or []) + urls
        db.session.commit()

        logger.info(f"Added {len(urls)} attachment(s) to task {task.id}")
        _broadcast_task(task)
        return jsonify(task.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to upload task attachments')
