# backend/routes/materials.py
from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
import logging

from models import db, Material, ValidationError, EDITABLE_MATERIAL_FIELDS
from middleware.auth import roles_required
from middleware.errors import handle_write_errors, server_error, not_found, forbidden, UploadError
from routes.utils import get_json_body, require_fields, apply_fields, parse_bool, parse_int
from services.file_utils import save_uploads
from services.realtime import notify_low_stock

materials_bp = Blueprint('materials', __name__)
logger = logging.getLogger(__name__)


def _owned_material(material_id):
    """Returns (material, error_response)"""
    material = db.session.get(Material, material_id)
    if not material:
        return None, not_found('Material')
    if material.vendor_id != current_user.id:
        return None, forbidden('Not authorized to modify this material')
    return material, None


@materials_bp.route('', methods=['POST'])
@roles_required('vendor')
def create_material():
    try:
        data = get_json_body()
        require_fields(data, 'name', 'category', 'price', 'unit')

        material = Material(
            vendor_id=current_user.id,
            name=data['name'],
            description=data.get('description'),
            category=data['category'],
            price=data['price'],
            unit=data['unit'],
            min_stock_level=data.get('min_stock_level', 10),
            sku=data.get('sku'),
            specifications=data.get('specifications') or {},
            erp_reference=data.get('erp_reference'),
            images=[]
        )
        material.apply_stock_level(data.get('stock_level', 0))

        db.session.add(material)
        db.session.commit()

        logger.info(f"Vendor {current_user.id} created material {material.id} ({material.sku})")
        return jsonify(material.to_dict()), 201

    except Exception as e:
        return handle_write_errors(e, 'Failed to create material')


@materials_bp.route('', methods=['GET'])
@login_required
def get_materials():
    """Catalog sorted by name. Vendors only see their own materials."""
    try:
        query = Material.query
        if current_user.role == 'vendor':
            query = query.filter(Material.vendor_id == current_user.id)

        category = request.args.get('category')
        if category:
            query = query.filter(Material.category == category)

        if parse_bool(request.args.get('available')):
            query = query.filter(Material.is_available.is_(True), Material.stock_level > 0)

        if parse_bool(request.args.get('low_stock')):
            query = query.filter(Material.stock_level <= Material.min_stock_level)

        materials = query.order_by(Material.name.asc(), Material.id.asc()).all()
        return jsonify([material.to_dict() for material in materials])

    except Exception as e:
        logger.error(f"Error retrieving materials: {str(e)}")
        return server_error('Failed to retrieve materials', e)


@materials_bp.route('/<int:material_id>', methods=['GET'])
@login_required
def get_material(material_id):
    try:
        material = db.session.get(Material, material_id)
        if not material:
            return not_found('Material')
        return jsonify(material.to_dict())

    except Exception as e:
        logger.error(f"Error retrieving material {material_id}: {str(e)}")
        return server_error('Failed to retrieve material', e)


@materials_bp.route('/<int:material_id>', methods=['PUT'])
@roles_required('vendor')
def update_material(material_id):
    try:
        material, error = _owned_material(material_id)
        if error:
            return error

        data = get_json_body()
        changed = apply_fields(material, data, EDITABLE_MATERIAL_FIELDS)
        if 'stock_level' in data:
            material.apply_stock_level(data['stock_level'])
            changed.append('stock_level')
        db.session.commit()

        logger.info(f"Material {material.id} updated: {changed}")
        if 'stock_level' in changed or 'min_stock_level' in changed:
            notify_low_stock(material)
        return jsonify(material.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to update material')


@materials_bp.route('/<int:material_id>', methods=['DELETE'])
@roles_required('vendor')
def delete_material(material_id):
    try:
        material, error = _owned_material(material_id)
        if error:
            return error

        db.session.delete(material)
        db.session.commit()

        logger.info(f"Material {material_id} deleted by vendor {current_user.id}")
        return jsonify({'message': 'Material deleted successfully'})

    except Exception as e:
        return handle_write_errors(e, 'Failed to delete material')


@materials_bp.route('/<int:material_id>/stock', methods=['PATCH'])
@roles_required('vendor')
def update_stock(material_id):
    try:
        material, error = _owned_material(material_id)
        if error:
            return error

        data = get_json_body()
        if 'stock_level' not in data:
            raise ValidationError('stock_level is required', 'stock_level')

        material.apply_stock_level(data['stock_level'])
        db.session.commit()

        logger.info(f"Material {material.id} stock set to {material.stock_level}")
        notify_low_stock(material)
        return jsonify(material.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to update stock')


@materials_bp.route('/bulk-update-stock', methods=['POST'])
@roles_required('vendor')
def bulk_update_stock():
    """Apply several stock levels in one transaction. Any foreign material aborts the whole batch."""
    try:
        data = get_json_body()
        updates = data.get('updates')
        if not isinstance(updates, list) or not updates:
            raise ValidationError('updates must be a non-empty list', 'updates')

        levels = {}
        for entry in updates:
            if not isinstance(entry, dict) or 'id' not in entry or 'stock_level' not in entry:
                raise ValidationError('Each update needs an id and a stock_level', 'updates')
            levels[parse_int(entry['id'], 'id')] = entry['stock_level']

        materials = Material.query.filter(Material.id.in_(list(levels))).all()
        found = {material.id: material for material in materials}

        missing = [material_id for material_id in levels if material_id not in found]
        if missing:
            return not_found(f"Material {missing[0]}")

        foreign = [material.id for material in materials if material.vendor_id != current_user.id]
        if foreign:
            logger.warning(f"Vendor {current_user.id} attempted bulk stock update on materials {foreign}")
            return forbidden('Not authorized to update one or more materials')

        for material_id, level in levels.items():
            found[material_id].apply_stock_level(level)
        db.session.commit()

        logger.info(f"Bulk stock update of {len(levels)} material(s) by vendor {current_user.id}")
        for material_id in levels:
            notify_low_stock(found[material_id])

        return jsonify({
            'message': 'Stock levels updated successfully',
            'materials': [found[material_id].to_dict() for material_id in levels]
        })

    except Exception as e:
        return handle_write_errors(e, 'Failed to update stock levels')


@materials_bp.route('/<int:material_id>/images', methods=['POST'])
@roles_required('vendor')
def upload_images(material_id):
    try:
        material, error = _owned_material(material_id)
        if error:
            return error

        files = [f for f in request.files.getlist('images') if f and f.filename]
        if not files:
            raise UploadError('No images provided')

        urls = save_uploads(
            files, 'materials', prefix=f"material-{material.id}",
            max_bytes=current_app.config['MATERIAL_IMAGE_MAX_BYTES'],
            image_only=True, thumbnail=True
        )
        material.images = list(material.images or []) + urls
        db.session.commit()

        logger.info(f"Added {len(urls)} image(s) to material {material.id}")
        return jsonify(material.to_dict())

    except Exception as e:
        return handle_write_errors(e, 'Failed to upload material images')
