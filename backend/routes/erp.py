# backend/routes/erp.py
from flask import Blueprint, jsonify
import logging

from models import db, Material, ValidationError
from middleware.auth import api_key_required
from middleware.errors import handle_write_errors, not_found
from routes.utils import get_json_body, require_fields
from services.realtime import notify_low_stock

erp_bp = Blueprint('erp', __name__)
logger = logging.getLogger(__name__)


@erp_bp.route('/stock-update', methods=['POST'])
@api_key_required
def erp_stock_update():
    """Webhook for ERP systems pushing a stock level by SKU"""
    try:
        data = get_json_body()
        require_fields(data, 'sku')
        if 'stock_level' not in data:
            raise ValidationError('stock_level is required', 'stock_level')

        material = Material.query.filter_by(sku=str(data['sku']).strip()).first()
        if not material:
            logger.warning(f"ERP stock update for unknown sku {data['sku']}")
            return not_found('Material')

        material.apply_stock_level(data['stock_level'])
        db.session.commit()

        logger.info(f"ERP set stock of {material.sku} to {material.stock_level}")
        notify_low_stock(material)
        return jsonify({'message': 'Stock updated successfully', 'material': material.to_dict()})

    except Exception as e:
        return handle_write_errors(e, 'Failed to apply ERP stock update')
