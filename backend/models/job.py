"""
Job tracking models for queued spreadsheet imports.

This module defines SQLAlchemy models for tracking background import jobs,
including their progress and results.
"""

from enum import Enum
from datetime import datetime
from sqlalchemy import (
    JSON, Column, Integer, String, TIMESTAMP, ForeignKey, Numeric, Text,
    CheckConstraint, Index, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from backend.models.schema import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), 'postgresql')


class JobStatus(str, Enum):
    """Job execution status."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    SUCCESS = 'success'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


class JobType(str, Enum):
    """Type of background job."""
    IMPORT = 'import'


class JobRun(Base):
    """
    Represents a queued spreadsheet import.

    Tracks the lifecycle of a job from creation through completion,
    storing parameters, results, and error information.
    """

    __tablename__ = 'job_runs'
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed', 'cancelled')",
            name='job_runs_status_check'
        ),
        Index('idx_job_runs_status', 'status'),
        Index('idx_job_runs_created_at', 'created_at'),
        Index('idx_job_runs_entity_type', 'entity_type'),
        {'comment': 'Tracks background spreadsheet imports'}
    )

    job_id = Column(
        String(255),
        primary_key=True,
        nullable=False,
        comment='Celery task UUID'
    )
    job_type = Column(
        String(50),
        nullable=False,
        default=JobType.IMPORT.value,
        comment='Type of job'
    )
    entity_type = Column(
        String(50),
        nullable=False,
        comment='Imported entity: planillados, leaders, candidates or groups'
    )
    status = Column(
        String(20),
        nullable=False,
        default=JobStatus.PENDING.value,
        server_default='pending',
        comment='Current job status'
    )
    created_at = Column(
        TIMESTAMP,
        default=datetime.utcnow,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Job creation timestamp'
    )
    started_at = Column(
        TIMESTAMP,
        nullable=True,
        comment='Job start timestamp'
    )
    completed_at = Column(
        TIMESTAMP,
        nullable=True,
        comment='Job completion timestamp'
    )

    params = Column(
        JSONType,
        default=dict,
        nullable=False,
        comment='Input parameters for the job'
    )
    result = Column(
        JSONType,
        nullable=True,
        comment='Import result summary'
    )
    error = Column(
        JSONType,
        nullable=True,
        comment='Error details if job failed'
    )
    created_by = Column(
        String(255),
        nullable=True,
        comment='Email of the user that queued the job'
    )

    progress = relationship(
        'JobProgress',
        back_populates='job',
        cascade='all, delete-orphan',
        order_by='JobProgress.timestamp'
    )

    def __repr__(self):
        return f"<JobRun(job_id='{self.job_id}', entity='{self.entity_type}', status='{self.status}')>"

    def to_dict(self) -> dict:
        """Convert job to dictionary representation."""
        return {
            'job_id': self.job_id,
            'job_type': self.job_type,
            'entity_type': self.entity_type,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'params': self.params,
            'result': self.result,
            'error': self.error,
            'created_by': self.created_by
        }

    def is_complete(self) -> bool:
        return self.status in [JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.CANCELLED]


class JobProgress(Base):
    """Progress update recorded while a job executes."""

    __tablename__ = 'job_progress'
    __table_args__ = (
        Index('idx_job_progress_job_id', 'job_id'),
        Index('idx_job_progress_timestamp', 'timestamp'),
        {'comment': 'Detailed progress tracking for jobs'}
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    job_id = Column(
        String(255),
        ForeignKey('job_runs.job_id', ondelete='CASCADE'),
        nullable=False,
        comment='Associated job ID'
    )
    stage = Column(
        String(50),
        nullable=False,
        comment='Current stage (reading, validating, saving)'
    )
    percent = Column(
        Numeric(5, 2),
        nullable=False,
        comment='Progress percentage (0.00 to 100.00)'
    )
    message = Column(
        Text,
        nullable=True,
        comment='Human-readable progress message'
    )
    timestamp = Column(
        TIMESTAMP,
        default=datetime.utcnow,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Progress update timestamp'
    )

    job = relationship('JobRun', back_populates='progress')

    def __repr__(self):
        return f"<JobProgress(job_id='{self.job_id}', stage='{self.stage}', percent={self.percent})>"
