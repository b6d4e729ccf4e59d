from app import db
from datetime import datetime, timezone

class Contractor(db.Model):
    """Contract terms for a contractor: rates, dates and reporting manager"""
    __tablename__ = 'contractors'

    contractor_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='CASCADE'), primary_key=True)
    manager_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='SET NULL'), index=True)

    # Rates
    rate_type = db.Column(db.String(20), default='hourly')  # 'hourly' or 'fixed'
    hourly_rate = db.Column(db.Numeric(12, 2))
    overtime_rate = db.Column(db.Numeric(12, 2))
    fixed_rate = db.Column(db.Numeric(12, 2))

    # Contract
    contract_start = db.Column(db.Date)
    contract_end = db.Column(db.Date)
    default_project_name = db.Column(db.String(255))
    position = db.Column(db.String(100))
    department = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    manager = db.relationship('Profile', foreign_keys=[manager_id])

    def to_dict(self):
        return {
            'contractor_id': self.contractor_id,
            'manager_id': self.manager_id,
            'manager_name': self.manager.full_name if self.manager else None,
            'rate_type': self.rate_type,
            'hourly_rate': float(self.hourly_rate) if self.hourly_rate is not None else None,
            'overtime_rate': float(self.overtime_rate) if self.overtime_rate is not None else None,
            'fixed_rate': float(self.fixed_rate) if self.fixed_rate is not None else None,
            'contract_start': self.contract_start.isoformat() if self.contract_start else None,
            'contract_end': self.contract_end.isoformat() if self.contract_end else None,
            'default_project_name': self.default_project_name,
            'position': self.position,
            'department': self.department,
            'is_active': self.is_active,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Contractor {self.contractor_id}>'


class ContractorProfile(db.Model):
    """Personal and banking details printed on invoices"""
    __tablename__ = 'contractor_profiles'

    user_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='CASCADE'), primary_key=True)

    # Address
    phone = db.Column(db.String(30))
    address_line1 = db.Column(db.String(255))
    address_line2 = db.Column(db.String(255))
    state_parish = db.Column(db.String(100))
    postal_code = db.Column(db.String(20))
    country = db.Column(db.String(100))

    # Banking
    bank_account_name = db.Column(db.String(255))
    bank_name = db.Column(db.String(255))
    bank_address = db.Column(db.Text)
    swift_code = db.Column(db.String(20))
    bank_routing_number = db.Column(db.String(50))
    bank_account_number = db.Column(db.String(50))
    account_type = db.Column(db.String(50))

    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    EDITABLE_FIELDS = (
        'phone', 'address_line1', 'address_line2', 'state_parish', 'postal_code', 'country',
        'bank_account_name', 'bank_name', 'bank_address', 'swift_code',
        'bank_routing_number', 'bank_account_number', 'account_type',
    )

    def address_lines(self):
        parts = [self.address_line1, self.address_line2, self.state_parish, self.postal_code, self.country]
        return [p for p in parts if p]

    def to_dict(self):
        data = {field: getattr(self, field) for field in self.EDITABLE_FIELDS}
        data['user_id'] = self.user_id
        data['updated_at'] = self.updated_at.isoformat() if self.updated_at else None
        return data

    def __repr__(self):
        return f'<ContractorProfile {self.user_id}>'
