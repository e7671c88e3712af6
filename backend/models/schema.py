"""
SQLAlchemy models for the campaign management system.

This module defines the database schema using SQLAlchemy ORM,
matching the schema defined in Alembic migrations.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, Column, Date, Integer, String, Text, Numeric, TIMESTAMP,
    ForeignKey, CheckConstraint, Index, text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class LocationType(str, Enum):
    """Kind of administrative or geographic area."""
    DEPARTMENT = 'department'
    MUNICIPALITY = 'municipality'
    NEIGHBORHOOD = 'neighborhood'
    ZONE = 'zone'


class Gender(str, Enum):
    MALE = 'M'
    FEMALE = 'F'
    OTHER = 'Other'


class PlanilladoStatus(str, Enum):
    """Verification status of a canvassed voter record."""
    VERIFIED = 'verified'
    PENDING = 'pending'


AGE_RANGES = [
    ('18-24', 18, 24),
    ('25-34', 25, 34),
    ('35-44', 35, 44),
    ('45-54', 45, 54),
    ('55-64', 55, 64),
    ('65+', 65, None),
]
UNDEFINED_AGE_RANGE = 'Sin definir'


def calculate_age(birth_date: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Age in whole years at `today` (defaults to the current date)."""
    if not birth_date:
        return None
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def age_range_for(age: Optional[int]) -> str:
    if age is None:
        return UNDEFINED_AGE_RANGE
    for label, low, high in AGE_RANGES:
        if age >= low and (high is None or age <= high):
            return label
    return UNDEFINED_AGE_RANGE


class TimestampMixin:
    """Creation and last-update timestamps shared by every table."""

    created_at = Column(
        TIMESTAMP,
        default=datetime.utcnow,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Creation timestamp'
    )
    updated_at = Column(
        TIMESTAMP,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Last modification timestamp'
    )


class User(TimestampMixin, Base):
    """Application user allowed to operate the campaign data."""

    __tablename__ = 'users'
    __table_args__ = (
        {'comment': 'Application users'},
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    email = Column(
        String(255),
        nullable=False,
        unique=True,
        comment='Login email'
    )
    full_name = Column(
        String(255),
        nullable=True,
        comment='Display name'
    )
    hashed_password = Column(
        String(255),
        nullable=False,
        comment='bcrypt password hash'
    )
    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text('true')
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Location(TimestampMixin, Base):
    """
    Administrative or geographic area.

    Locations form a tree through `parent_id`: a department owns
    municipalities, a municipality owns neighborhoods and zones. A location
    owns its children but not its parent, and it is never hard-deleted; it is
    disabled through `is_active` instead.
    """

    __tablename__ = 'locations'
    __table_args__ = (
        CheckConstraint(
            "type IN ('department', 'municipality', 'neighborhood', 'zone')",
            name='locations_type_check'
        ),
        CheckConstraint('population >= 0', name='locations_population_check'),
        CheckConstraint('parent_id IS NULL OR parent_id <> id', name='locations_parent_not_self_check'),
        Index('idx_locations_parent_id', 'parent_id'),
        Index('idx_locations_type', 'type'),
        {'comment': 'Administrative and geographic areas (departments, municipalities, ...)'}
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    name = Column(
        String(255),
        nullable=False,
        comment='Display name'
    )
    type = Column(
        String(20),
        nullable=False,
        comment='department, municipality, neighborhood or zone'
    )
    code = Column(
        String(20),
        nullable=True,
        unique=True,
        comment='Official DANE code, unique when present'
    )
    parent_id = Column(
        Integer,
        ForeignKey('locations.id'),
        nullable=True,
        comment='Parent location'
    )
    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text('true')
    )
    latitude = Column(
        Numeric(10, 7),
        nullable=True
    )
    longitude = Column(
        Numeric(10, 7),
        nullable=True
    )
    population = Column(
        Integer,
        nullable=False,
        default=0,
        server_default='0',
        comment='Estimated population'
    )

    parent = relationship('Location', remote_side=[id], back_populates='children')
    children = relationship('Location', back_populates='parent', order_by='Location.name')

    def __repr__(self):
        return f"<Location(id={self.id}, name='{self.name}', type='{self.type}')>"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'code': self.code,
            'parent_id': self.parent_id,
            'is_active': self.is_active,
            'latitude': float(self.latitude) if self.latitude is not None else None,
            'longitude': float(self.longitude) if self.longitude is not None else None,
            'population': self.population,
        }


class Candidate(TimestampMixin, Base):
    """Candidate running in the campaign."""

    __tablename__ = 'candidates'
    __table_args__ = (
        CheckConstraint('meta >= 0', name='candidates_meta_check'),
        Index('idx_candidates_name', 'name'),
        {'comment': 'Candidates with their vote goals'}
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    name = Column(
        String(255),
        nullable=False,
        unique=True
    )
    email = Column(
        String(255),
        nullable=False,
        unique=True
    )
    phone = Column(
        String(20),
        nullable=True
    )
    meta = Column(
        Integer,
        nullable=False,
        default=0,
        server_default='0',
        comment='Voter goal'
    )
    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text('true')
    )
    description = Column(
        Text,
        nullable=True
    )
    position = Column(
        String(50),
        nullable=True,
        comment='Office the candidate runs for'
    )
    party = Column(
        String(100),
        nullable=True,
        comment='Political party'
    )

    groups = relationship('Group', back_populates='candidate')

    def __repr__(self):
        return f"<Candidate(id={self.id}, name='{self.name}')>"


class Group(TimestampMixin, Base):
    """Organizational unit under a candidate that aggregates leaders."""

    __tablename__ = 'groups'
    __table_args__ = (
        CheckConstraint('meta >= 0', name='groups_meta_check'),
        Index('idx_groups_candidate_id', 'candidate_id'),
        Index('idx_groups_candidate_name', 'candidate_id', 'name', unique=True),
        {'comment': 'Campaign groups'}
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    name = Column(
        String(255),
        nullable=False
    )
    description = Column(
        Text,
        nullable=True
    )
    zone = Column(
        String(100),
        nullable=True
    )
    meta = Column(
        Integer,
        nullable=False,
        default=0,
        server_default='0',
        comment='Voter goal'
    )
    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text('true')
    )
    candidate_id = Column(
        Integer,
        ForeignKey('candidates.id'),
        nullable=False
    )

    candidate = relationship('Candidate', back_populates='groups')
    leaders = relationship('Leader', back_populates='group')
    planillados = relationship('Planillado', back_populates='group')

    def __repr__(self):
        return f"<Group(id={self.id}, name='{self.name}', candidate_id={self.candidate_id})>"


class Leader(TimestampMixin, Base):
    """Grassroots coordinator with a voter-recruitment goal."""

    __tablename__ = 'leaders'
    __table_args__ = (
        CheckConstraint("gender IS NULL OR gender IN ('M', 'F', 'Other')", name='leaders_gender_check'),
        CheckConstraint('meta >= 0', name='leaders_meta_check'),
        Index('idx_leaders_group_id', 'group_id'),
        Index('idx_leaders_names', 'last_name', 'first_name'),
        {'comment': 'Canvassing leaders'}
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    cedula = Column(
        String(20),
        nullable=False,
        unique=True,
        comment='National ID number'
    )
    first_name = Column(
        String(100),
        nullable=False
    )
    last_name = Column(
        String(100),
        nullable=False
    )
    phone = Column(
        String(20),
        nullable=True
    )
    email = Column(
        String(150),
        nullable=True
    )
    address = Column(
        Text,
        nullable=True
    )
    neighborhood = Column(
        String(100),
        nullable=True
    )
    municipality = Column(
        String(100),
        nullable=True
    )
    birth_date = Column(
        Date,
        nullable=True
    )
    gender = Column(
        String(10),
        nullable=True
    )
    meta = Column(
        Integer,
        nullable=False,
        default=0,
        server_default='0',
        comment='Voter goal'
    )
    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text('true')
    )
    is_verified = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text('false')
    )
    group_id = Column(
        Integer,
        ForeignKey('groups.id', ondelete='SET NULL'),
        nullable=True
    )

    group = relationship('Group', back_populates='leaders')
    planillados = relationship('Planillado', back_populates='leader')

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Leader(id={self.id}, cedula='{self.cedula}')>"


class Planillado(TimestampMixin, Base):
    """Canvassed voter record."""

    __tablename__ = 'planillados'
    __table_args__ = (
        CheckConstraint("status IN ('verified', 'pending')", name='planillados_status_check'),
        CheckConstraint("gender IS NULL OR gender IN ('M', 'F', 'Other')", name='planillados_gender_check'),
        Index('idx_planillados_leader_id', 'leader_id'),
        Index('idx_planillados_group_id', 'group_id'),
        Index('idx_planillados_neighborhood', 'neighborhood'),
        Index('idx_planillados_pending_leader', 'pending_leader_cedula'),
        {'comment': 'Canvassed voter records (planillados)'}
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    cedula = Column(
        String(20),
        nullable=False,
        unique=True,
        comment='National ID number'
    )
    first_name = Column(
        String(150),
        nullable=False,
        comment='Nombres'
    )
    last_name = Column(
        String(150),
        nullable=False,
        comment='Apellidos'
    )
    mobile = Column(
        String(20),
        nullable=True,
        comment='Celular'
    )
    address = Column(
        Text,
        nullable=True
    )
    neighborhood = Column(
        String(100),
        nullable=True,
        comment='Barrio where the voter lives'
    )
    id_issue_date = Column(
        Date,
        nullable=True,
        comment='Fecha de expedicion of the cedula'
    )
    voting_department = Column(
        String(100),
        nullable=True
    )
    voting_municipality = Column(
        String(100),
        nullable=True
    )
    voting_address = Column(
        Text,
        nullable=True
    )
    polling_station = Column(
        String(50),
        nullable=True,
        comment='Zona y puesto de votacion'
    )
    table_number = Column(
        String(20),
        nullable=True,
        comment='Mesa'
    )
    status = Column(
        String(20),
        nullable=False,
        default=PlanilladoStatus.PENDING.value,
        server_default='pending'
    )
    is_edil = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text('false')
    )
    is_updated = Column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text('true')
    )
    leader_id = Column(
        Integer,
        ForeignKey('leaders.id', ondelete='SET NULL'),
        nullable=True
    )
    group_id = Column(
        Integer,
        ForeignKey('groups.id', ondelete='SET NULL'),
        nullable=True
    )
    birth_date = Column(
        Date,
        nullable=True
    )
    gender = Column(
        String(10),
        nullable=True
    )
    notes = Column(
        String(500),
        nullable=True
    )
    pending_leader_cedula = Column(
        String(20),
        nullable=True,
        comment='Leader cedula waiting for the leader to be registered'
    )

    leader = relationship('Leader', back_populates='planillados')
    group = relationship('Group', back_populates='planillados')

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def age(self) -> Optional[int]:
        return calculate_age(self.birth_date)

    @property
    def age_range(self) -> str:
        return age_range_for(self.age)

    def __repr__(self):
        return f"<Planillado(id={self.id}, cedula='{self.cedula}', status='{self.status}')>"
