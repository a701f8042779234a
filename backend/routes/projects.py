# backend/routes/projects.py
from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
import logging

from models import db, Project, Bid, Message, User, ValidationError, PROJECT_STATUSES
from middleware.auth import roles_required
from middleware.errors import (
    handle_write_errors, server_error, not_found, forbidden, error_response, UploadError
)
from routes.utils import get_json_body, require_fields, apply_fields, parse_bool
from services.file_utils import save_upload, remove_upload, generate_bid_comparison_report, DOCUMENT_EXTENSIONS
from services.date_utils import parse_datetime
from services.realtime import notify_project

projects_bp = Blueprint('projects', __name__)
logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('title', 'description', 'budget', 'location',
                    'permit_required', 'permit_expiry_date', 'milestones')
DATE_FIELDS = ('permit_expiry_date',)
PROJECT_FILE_TYPES = ('permit', 'blueprint')


def _resolve_customer(customer_id):
    if customer_id in (None, ''):
        return None
    customer = db.session.get(User, customer_id) if str(customer_id).isdigit() else None
    if customer is None or customer.role != 'customer' or not customer.is_active:
        raise ValidationError('customer_id must reference an existing customer', 'customer_id')
    return customer.id


def _visible_bids(project, user):
    if project.is_owner(user):
        return project.bids.order_by(Bid.created_at.desc()).all()
    if user.role == 'subcontractor':
        return project.bids.filter_by(bidder_id=user.id).all()
    return []


@projects_bp.route('', methods=['POST'])
@roles_required('contractor')
def create_project():
    """Create a draft project owned by the calling contractor"""
    try:
        data = get_json_body()
        require_fields(data, 'title', 'description', 'budget', 'location')

        project = Project(
            title=data['title'],
            description=data['description'],
            budget=data['budget'],
            location=data['location'],
            permit_required=parse_bool(data.get('permit_required')),
            milestones=data.get('milestones') or [],
            status='draft',
            contractor_id=current_user.id,
            customer_id=_resolve_customer(data.get('customer_id'))
        )
        project.set_schedule(
            parse_datetime(data.get('start_date'), 'start_date'),
            parse_datetime(data.get('end_date'), 'end_date')
        )
        project.permit_expiry_date = parse_datetime(data.get('permit_expiry_date'), 'permit_expiry_date')

        db.session.add(project)
        db.session.commit()

        logger.info(f"Contractor {current_user.id} created project {project.id}")
        return jsonify(project.to_dict()), 201

    except Exception as e:
        return handle_write_errors(e, 'Failed to create project')


@projects_bp.route('', methods=['GET'])
@login_required
def get_projects():
    """Projects visible to the caller's role, newest first"""
    try:
        status = request.args.get('status')
        if status and status not in PROJECT_STATUSES:
            return error_response(f"Invalid status filter: {status}", 400)

        query = Project.query
        if current_user.role == 'contractor':
            query = query.filter(Project.contractor_id == current_user.id)
        elif current_user.role == 'customer':
            query = query.filter(Project.customer_id == current_user.id)
        elif current_user.role == 'subcontractor':
            query = query.filter(Project.status == 'bidding')
        else:
            query = query.filter(Project.status.in_(('bidding', 'in_progress')))

        if status:
            query = query.filter(Project.status == status)

        projects = query.order_by(Project.created_at.desc()).all()
        return jsonify([project.to_dict() for project in projects])

    except Exception as e:
        logger.error(f"Error retrieving projects: {str(e)}")
        return server_error('Failed to retrieve projects', e)


@projects_bp.route('/<int:project_id>', methods=['GET'])
@login_required
def get_project(project_id):
    try:
        project = db.session.get(Project, project_id)
        if not project:
            return not_found('Project')
        if not project.can_view(current_user):
            return forbidden('Not authorized to view this project')

        return jsonify(project.to_dict(
            bids=_visible_bids(project, current_user),
            include_tasks=project.is_owner(current_user)
        ))

    except Exception as e:
        logger.error(f"Error retrieving project {project_id}: {str(e)}")
        return server_error('Failed to retrieve project', e)


@projects_bp.route('/<int:project_id>', methods=['PUT'])
@roles_required('contractor', 'customer')
def update_project(project_id):
    try:
        project = db.session.get(Project, project_id)
        if not project:
            return not_found('Project')
        if not project.is_owner(current_user):
            return forbidden('Not authorized to update this project')

        data = get_json_body()
        if 'customer_id' in data and current_user.id != project.contractor_id:
            return forbidden('Only the contractor can change the customer')

        new_status = data.get('status')
        if new_status is not None and not project.can_transition_to(new_status):
            return error_response(f"Cannot change project status from {project.status} to {new_status}", 400)

        if 'permit_required' in data:
            data['permit_required'] = parse_bool(data['permit_required'])
        changed = apply_fields(project, data, UPDATABLE_FIELDS, DATE_FIELDS)

        if 'start_date' in data or 'end_date' in data:
            project.set_schedule(
                parse_datetime(data['start_date'], 'start_date') if 'start_date' in data else project.start_date,
                parse_datetime(data['end_date'], 'end_date') if 'end_date' in data else project.end_date
            )
            changed.extend(field for field in ('start_date', 'end_date') if field in data)

        if 'customer_id' in data:
            project.customer_id = _resolve_customer(data['customer_id'])
            changed.append('customer_id')

        if new_status is not None and new_status != project.status:
            project.status = new_status
            changed.append('status')

        db.session.commit()

        logger.info(f"Project {project.id} updated by user {current_user.id}: {changed}")
        payload = project.to_dict()
        notify_project(project.id, 'project_updated', payload)
        return jsonify(payload)

    except Exception as e:
        return handle_write_errors(e, 'Failed to update project')


@projects_bp.route('/<int:project_id>', methods=['DELETE'])
@roles_required('contractor')
def delete_project(project_id):
    """Delete a project with its bids, tasks and disputes. Its messages are kept."""
    try:
        project = db.session.get(Project, project_id)
        if not project:
            return not_found('Project')
        if project.contractor_id != current_user.id:
            return forbidden('Not authorized to delete this project')

        Message.query.filter_by(project_id=project.id).update(
            {'project_id': None}, synchronize_session=False)
        db.session.delete(project)
        db.session.commit()

        logger.info(f"Project {project_id} deleted by contractor {current_user.id}")
        return jsonify({'message': 'Project deleted successfully'})

    except Exception as e:
        return handle_write_errors(e, 'Failed to delete project')


@projects_bp.route('/<int:project_id>/files', methods=['POST'])
@roles_required('contractor', 'customer')
def upload_project_file(project_id):
    """Attach a permit or blueprint document (multipart: file, file_type)"""
    try:
        project = db.session.get(Project, project_id)
        if not project:
            return not_found('Project')
        if not project.is_owner(current_user):
            return forbidden('Not authorized to update this project')

        file_type = request.form.get('file_type')
        if file_type not in PROJECT_FILE_TYPES:
            raise ValidationError('file_type must be one of: permit, blueprint', 'file_type')
        if 'file' not in request.files:
            raise UploadError('No file provided')

        url = save_upload(
            request.files['file'], 'projects', prefix=file_type,
            max_bytes=current_app.config['ATTACHMENT_MAX_BYTES'],
            allowed_extensions=DOCUMENT_EXTENSIONS
        )

        attribute = f"{file_type}_url"
        previous = getattr(project, attribute)
        setattr(project, attribute, url)
        db.session.commit()

        if previous and previous != url:
            remove_upload(previous)

        logger.info(f"Stored {file_type} for project {project.id}: {url}")
        return jsonify(project.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to upload project file')


@projects_bp.route('/<int:project_id>/bids/report', methods=['GET'])
@roles_required('contractor')
def bid_comparison_report(project_id):
    try:
        project = db.session.get(Project, project_id)
        if not project:
            return not_found('Project')
        if project.contractor_id != current_user.id:
            return forbidden('Not authorized to view bids on this project')

        bids = project.bids.order_by(Bid.amount.asc()).all()
        return generate_bid_comparison_report(project, bids)

    except Exception as e:
        logger.error(f"Error generating bid report for project {project_id}: {str(e)}")
        return server_error('Failed to generate bid report', e)
