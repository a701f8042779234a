# backend/models/material.py

from datetime import datetime

from sqlalchemy.orm import validates

from .base import db, ValidationError, isoformat, require_number, require_list

EDITABLE_MATERIAL_FIELDS = ('name', 'description', 'category', 'price', 'unit',
                            'min_stock_level', 'sku', 'specifications', 'erp_reference')


class Material(db.Model):
    __tablename__ = 'materials'

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100), nullable=False, index=True)
    price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    stock_level = db.Column(db.Integer, default=0, nullable=False)
    min_stock_level = db.Column(db.Integer, default=10, nullable=False)
    sku = db.Column(db.String(64), unique=True)
    images = db.Column(db.JSON, default=list)
    specifications = db.Column(db.JSON, default=dict)
    is_available = db.Column(db.Boolean, default=True, nullable=False)
    erp_reference = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vendor = db.relationship('User', backref=db.backref('materials', lazy='dynamic'))

    @validates('name', 'category', 'unit')
    def validate_required_text(self, key, value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{key} is required", key)
        return value.strip()

    @validates('price')
    def validate_price(self, key, value):
        return require_number('price', value, minimum=0)

    @validates('stock_level', 'min_stock_level')
    def validate_stock(self, key, value):
        return require_number(key, value, minimum=0, integer=True)

    @validates('sku')
    def validate_sku(self, key, value):
        if value is None:
            return None
        return str(value).strip() or None

    @validates('images')
    def validate_images(self, key, value):
        return require_list('images', value)

    @validates('specifications')
    def validate_specifications(self, key, value):
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValidationError('specifications must be an object', 'specifications')
        return value

    @property
    def is_low_stock(self):
        return self.stock_level is not None and self.stock_level <= (self.min_stock_level or 0)

    def apply_stock_level(self, stock_level):
        """Set the stock level; a material with no stock is unavailable"""
        self.stock_level = stock_level
        self.is_available = self.stock_level > 0

    def to_dict(self):
        return {
            'id': self.id,
            'vendor_id': self.vendor_id,
            'vendor': self.vendor.to_summary() if self.vendor else None,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'price': self.price,
            'unit': self.unit,
            'stock_level': self.stock_level,
            'min_stock_level': self.min_stock_level,
            'low_stock': self.is_low_stock,
            'sku': self.sku,
            'images': self.images or [],
            'specifications': self.specifications or {},
            'is_available': self.is_available,
            'erp_reference': self.erp_reference,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<Material id={self.id} sku={self.sku} stock={self.stock_level}>'
