"""Models package for the campaign management system."""
from backend.models.schema import (
    Base, User, Location, Candidate, Group, Leader, Planillado,
    LocationType, Gender, PlanilladoStatus
)
from backend.models.job import JobRun, JobProgress, JobStatus, JobType

__all__ = [
    'Base', 'User', 'Location', 'Candidate', 'Group', 'Leader', 'Planillado',
    'LocationType', 'Gender', 'PlanilladoStatus',
    'JobRun', 'JobProgress', 'JobStatus', 'JobType',
]
