# backend/services/bid_service.py
"""
Bid acceptance and rejection.

Accepting a bid is one unit of work: inside a single transaction the
project row is locked, its status moves ``bidding -> in_progress`` through
a conditional UPDATE, the bid is accepted and every other pending bid on
the project is rejected. Either all of it commits or none of it does, so
two concurrent acceptances on the same project cannot both succeed.
"""

import logging
from datetime import datetime

from sqlalchemy import update

from models import db, Bid, Project
from middleware.errors import ApiError

logger = logging.getLogger(__name__)


def _load_bid(bid_id):
    bid = db.session.get(Bid, bid_id)
    if bid is None:
        raise ApiError('Bid not found', 404)
    return bid


def _lock_project(project_id):
    # SELECT ... FOR UPDATE on backends that support it
    return db.session.query(Project).filter(Project.id == project_id).with_for_update().one()


def accept_bid(bid_id, user):
    """
    Accept a pending bid on a project that is open for bidding.

    Returns:
        tuple: (accepted bid, project, list of bids rejected as a consequence)

    Raises:
        ApiError: 404 unknown bid, 403 not the project contractor, 400 project
            not bidding or bid not pending, 409 another acceptance won the race
    """
    try:
        bid = _load_bid(bid_id)
        project = _lock_project(bid.project_id)

        if project.contractor_id != user.id:
            raise ApiError('Not authorized to accept bids on this project', 403)
        if project.status != 'bidding':
            raise ApiError('Project is not in bidding status', 400)
        if bid.status != 'pending':
            raise ApiError('Only pending bids can be accepted', 400)

        result = db.session.execute(
            update(Project)
            .where(Project.id == project.id, Project.status == 'bidding')
            .values(status='in_progress', updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ApiError('Project is no longer open for bidding', 409)

        bid.status = 'accepted'

        rejected = Bid.query.filter(
            Bid.project_id == project.id,
            Bid.id != bid.id,
            Bid.status == 'pending'
        ).all()
        for sibling in rejected:
            sibling.status = 'rejected'

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Bid {bid.id} accepted on project {project.id}; {len(rejected)} other bids rejected")
    return bid, project, rejected


def reject_bid(bid_id, user):
    """Reject a single pending bid. The project status is left alone."""
    try:
        bid = _load_bid(bid_id)
        project = bid.project

        if project.contractor_id != user.id:
            raise ApiError('Not authorized to reject bids on this project', 403)
        if bid.status != 'pending':
            raise ApiError('Only pending bids can be rejected', 400)

        bid.status = 'rejected'
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Bid {bid.id} rejected on project {project.id}")
    return bid
