# backend/routes/bids.py
from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
import logging

from models import db, Bid, Project, ValidationError, BID_STATUSES, EDITABLE_BID_FIELDS
from middleware.auth import roles_required
from middleware.errors import handle_write_errors, server_error, validation_error, not_found, forbidden, error_response
from routes.utils import get_json_body, require_fields, apply_fields, parse_int
from services.bid_service import accept_bid as accept_bid_atomically, reject_bid as reject_pending_bid
from services.date_utils import parse_datetime
from services.realtime import notify_user, notify_project

bids_bp = Blueprint('bids', __name__)
logger = logging.getLogger(__name__)


def _can_view_bid(bid, user):
    return bid.bidder_id == user.id or bid.project.is_owner(user)


def _status_event(bid):
    return {
        'bid_id': bid.id,
        'project_id': bid.project_id,
        'status': bid.status,
        'bid': bid.to_dict()
    }


@bids_bp.route('', methods=['POST'])
@roles_required('subcontractor')
def create_bid():
    """Submit a bid on a project that is open for bidding"""
    try:
        data = get_json_body()
        require_fields(data, 'project_id', 'amount', 'timeline', 'description',
                       'material_costs', 'labor_costs')

        project = db.session.get(Project, parse_int(data['project_id'], 'project_id'))
        if not project:
            return not_found('Project')
        if project.status != 'bidding':
            return error_response('Project is not open for bidding', 400)

        bid = Bid(
            project_id=project.id,
            bidder_id=current_user.id,
            amount=data['amount'],
            timeline=data['timeline'],
            description=data['description'],
            material_costs=data['material_costs'],
            labor_costs=data['labor_costs'],
            start_date=parse_datetime(data.get('start_date'), 'start_date'),
            documents=data.get('documents') or [],
            status='pending'
        )

        db.session.add(bid)
        db.session.commit()

        logger.info(f"Subcontractor {current_user.id} bid {bid.amount} on project {project.id}")

        payload = bid.to_dict()
        notify_user(project.contractor_id, 'new_bid', payload)
        if project.customer_id:
            notify_user(project.customer_id, 'new_bid', payload)
        return jsonify(payload), 201

    except Exception as e:
        return handle_write_errors(e, 'Failed to create bid')


@bids_bp.route('', methods=['GET'])
@login_required
def get_bids():
    """Bids visible to the caller, newest first. Filters: project_id, status"""
    try:
        project_id = parse_int(request.args.get('project_id'), 'project_id')
        status = request.args.get('status')
        if status and status not in BID_STATUSES:
            return error_response(f"Invalid status filter: {status}", 400)

        query = Bid.query
        if current_user.role == 'subcontractor':
            query = query.filter(Bid.bidder_id == current_user.id)
        elif current_user.role == 'contractor':
            query = query.join(Project).filter(Project.contractor_id == current_user.id)
        elif current_user.role == 'customer':
            query = query.join(Project).filter(Project.customer_id == current_user.id)
        else:
            return jsonify([])

        if project_id is not None:
            query = query.filter(Bid.project_id == project_id)
        if status:
            query = query.filter(Bid.status == status)

        bids = query.order_by(Bid.created_at.desc(), Bid.id.desc()).all()
        return jsonify([bid.to_dict(include_project=True) for bid in bids])

    except ValidationError as e:
        return validation_error(e)
    except Exception as e:
        logger.error(f"Error retrieving bids: {str(e)}")
        return server_error('Failed to retrieve bids', e)


@bids_bp.route('/<int:bid_id>', methods=['GET'])
@login_required
def get_bid(bid_id):
    try:
        bid = db.session.get(Bid, bid_id)
        if not bid:
            return not_found('Bid')
        if not _can_view_bid(bid, current_user):
            return forbidden('Not authorized to view this bid')

        return jsonify(bid.to_dict(include_project=True))

    except Exception as e:
        logger.error(f"Error retrieving bid {bid_id}: {str(e)}")
        return server_error('Failed to retrieve bid', e)


@bids_bp.route('/<int:bid_id>', methods=['PUT'])
@roles_required('subcontractor')
def update_bid(bid_id):
    """Only the bidder may change a bid, and only while it is pending"""
    try:
        bid = db.session.get(Bid, bid_id)
        if not bid:
            return not_found('Bid')
        if bid.bidder_id != current_user.id:
            logger.warning(f"User {current_user.id} attempted to update bid {bid.id} of user {bid.bidder_id}")
            return forbidden('Not authorized to update this bid')
        if bid.status != 'pending':
            return error_response('Cannot update non-pending bid', 400)

        data = get_json_body()
        changed = apply_fields(bid, data, EDITABLE_BID_FIELDS, date_fields=('start_date',))
        db.session.commit()

        logger.info(f"Bid {bid.id} updated: {changed}")
        return jsonify(bid.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to update bid')


@bids_bp.route('/<int:bid_id>/accept', methods=['POST'])
@roles_required('contractor')
def accept_bid(bid_id):
    """Accept a bid: the project starts and every competing bid is rejected, atomically"""
    try:
        bid, project, rejected = accept_bid_atomically(bid_id, current_user)

        notify_user(bid.bidder_id, 'bid_status_changed', _status_event(bid))
        for other in rejected:
            notify_user(other.bidder_id, 'bid_status_changed', _status_event(other))
        notify_project(project.id, 'project_updated', project.to_dict())

        response = bid.to_dict(include_project=True)
        response['rejected_bid_ids'] = [other.id for other in rejected]
        return jsonify(response)

    except Exception as e:
        return handle_write_errors(e, 'Failed to accept bid')


@bids_bp.route('/<int:bid_id>/reject', methods=['POST'])
@roles_required('contractor')
def reject_bid(bid_id):
    try:
        bid = reject_pending_bid(bid_id, current_user)

        notify_user(bid.bidder_id, 'bid_status_changed', _status_event(bid))
        return jsonify(bid.to_dict(include_project=True))

    except Exception as e:
        return handle_write_errors(e, 'Failed to reject bid')
