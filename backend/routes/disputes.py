# backend/routes/disputes.py
from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from sqlalchemy import or_
import logging

from models import db, Dispute, Project, User, ValidationError, OPEN_DISPUTE_STATUSES
from middleware.errors import (
    handle_write_errors, server_error, validation_error, not_found, forbidden, error_response
)
from routes.utils import get_json_body, require_fields, apply_fields, parse_int

disputes_bp = Blueprint('disputes', __name__)
logger = logging.getLogger(__name__)

PARTY_FIELDS = ('reason', 'evidence_photos')
OWNER_STATUSES = ('in_review', 'closed')


def _involved_in(project, user):
    return user.id in project.participant_ids() or project.has_bid_from(user)


@disputes_bp.route('', methods=['POST'])
@login_required
def create_dispute():
    try:
        data = get_json_body()
        require_fields(data, 'project_id', 'against_id', 'reason')

        project = db.session.get(Project, parse_int(data['project_id'], 'project_id'))
        if not project:
            return not_found('Project')

        against = db.session.get(User, parse_int(data['against_id'], 'against_id'))
        if not against:
            return not_found('User to dispute against')
        if against.id == current_user.id:
            return error_response('You cannot raise a dispute against yourself', 400)

        if not _involved_in(project, current_user):
            return forbidden('You are not involved in this project')

        dispute = Dispute(
            project_id=project.id,
            raised_by_id=current_user.id,
            against_id=against.id,
            reason=data['reason'],
            evidence_photos=data.get('evidence_photos') or [],
            status='open'
        )
        db.session.add(dispute)
        db.session.commit()

        logger.info(f"Dispute {dispute.id} raised by {current_user.id} against {against.id} on project {project.id}")
        return jsonify(dispute.to_dict()), 201

    except Exception as e:
        return handle_write_errors(e, 'Failed to create dispute')


@disputes_bp.route('', methods=['GET'])
@login_required
def get_disputes():
    """Disputes the caller is a party to or whose project they own, newest first"""
    try:
        project_id = parse_int(request.args.get('project_id'), 'project_id')

        query = Dispute.query.join(Project, Dispute.project_id == Project.id).filter(or_(
            Dispute.raised_by_id == current_user.id,
            Dispute.against_id == current_user.id,
            Project.contractor_id == current_user.id,
            Project.customer_id == current_user.id
        ))
        if project_id is not None:
            query = query.filter(Dispute.project_id == project_id)

        disputes = query.order_by(Dispute.created_at.desc(), Dispute.id.desc()).all()
        return jsonify([dispute.to_dict() for dispute in disputes])

    except ValidationError as e:
        return validation_error(e)
    except Exception as e:
        logger.error(f"Error retrieving disputes: {str(e)}")
        return server_error('Failed to retrieve disputes', e)


@disputes_bp.route('/<int:dispute_id>', methods=['GET'])
@login_required
def get_dispute(dispute_id):
    try:
        dispute = db.session.get(Dispute, dispute_id)
        if not dispute:
            return not_found('Dispute')
        if not dispute.can_view(current_user):
            return forbidden('Not authorized to view this dispute')

        return jsonify(dispute.to_dict())

    except Exception as e:
        logger.error(f"Error retrieving dispute {dispute_id}: {str(e)}")
        return server_error('Failed to retrieve dispute', e)


@disputes_bp.route('/<int:dispute_id>', methods=['PUT'])
@login_required
def update_dispute(dispute_id):
    """
    Parties may edit reason and evidence while the dispute is open or in review.
    Project owners may move it to in_review or closed.
    """
    try:
        dispute = db.session.get(Dispute, dispute_id)
        if not dispute:
            return not_found('Dispute')

        is_party = dispute.is_party(current_user)
        is_owner = dispute.project.is_owner(current_user)
        if not (is_party or is_owner):
            return forbidden('Not authorized to update this dispute')

        data = get_json_body()
        editing = [field for field in PARTY_FIELDS if field in data]

        if editing:
            if not is_party:
                return forbidden('Only the parties can edit the dispute details')
            if dispute.status not in OPEN_DISPUTE_STATUSES:
                return error_response('Dispute can no longer be edited', 400)
            apply_fields(dispute, data, PARTY_FIELDS)

        if 'status' in data:
            if not is_owner:
                return forbidden('Only project owners can change the dispute status')
            if data['status'] not in OWNER_STATUSES:
                raise ValidationError('status must be one of: in_review, closed', 'status')
            if dispute.status not in OPEN_DISPUTE_STATUSES:
                return error_response(f"Dispute is already {dispute.status}", 400)
            dispute.status = data['status']

        db.session.commit()

        logger.info(f"Dispute {dispute.id} updated by user {current_user.id}")
        return jsonify(dispute.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to update dispute')


@disputes_bp.route('/<int:dispute_id>/resolve', methods=['POST'])
@login_required
def resolve_dispute(dispute_id):
    try:
        dispute = db.session.get(Dispute, dispute_id)
        if not dispute:
            return not_found('Dispute')
        if not dispute.project.is_owner(current_user):
            return forbidden('Only the project contractor or customer can resolve disputes')
        if dispute.status not in OPEN_DISPUTE_STATUSES:
            return error_response(f"Dispute is already {dispute.status}", 400)

        data = get_json_body()
        dispute.resolve(data.get('resolution'))
        db.session.commit()

        logger.info(f"Dispute {dispute.id} resolved by user {current_user.id}")
        return jsonify(dispute.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to resolve dispute')
