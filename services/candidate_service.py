"""
Candidate Service - candidates and their aggregate campaign numbers.

Leaders and voters are reached through the candidate's groups.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.schema import Candidate, Group, Leader, Planillado
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.query_utils import (
    apply_date_range, average, count_by, goal_percentage, label_counts, paginate, search_clause
)

logger = logging.getLogger(__name__)

CANDIDATE_EXPORT_HEADERS = [
    'ID', 'Nombre', 'Email', 'Teléfono', 'Posición', 'Partido', 'Meta',
    'Votantes Actuales', 'Cumplimiento (%)', 'Grupos Asociados', 'Líderes Total',
    'Estado', 'Fecha de Creación'
]


class CandidateService:
    """Framework-agnostic business logic for candidates."""

    def __init__(self, db_session: Session):
        self.session = db_session

    def get(self, candidate_id: int) -> Candidate:
        candidate = self.session.get(Candidate, candidate_id)
        if not candidate:
            raise NotFoundError(f"Candidate {candidate_id} not found")
        return candidate

    def _filtered_query(self, filters: Dict[str, Any]):
        query = self.session.query(Candidate)
        clause = search_clause(
            filters.get('search'),
            Candidate.name, Candidate.email, Candidate.position, Candidate.party
        )
        if clause is not None:
            query = query.filter(clause)
        if filters.get('position'):
            query = query.filter(Candidate.position.ilike(f"%{filters['position']}%"))
        if filters.get('party'):
            query = query.filter(Candidate.party.ilike(f"%{filters['party']}%"))
        if filters.get('is_active') is not None:
            query = query.filter(Candidate.is_active == filters['is_active'])
        return apply_date_range(query, Candidate.created_at, filters.get('date_from'), filters.get('date_to'))

    def counts(self, ids: List[int]) -> Dict[int, Dict[str, int]]:
        """Groups, leaders and voters per candidate."""
        groups = count_by(self.session, Group.candidate_id, ids)
        leaders = count_by(self.session, Group.candidate_id, ids, (Leader, Leader.group_id == Group.id))
        voters = count_by(self.session, Group.candidate_id, ids, (Planillado, Planillado.group_id == Group.id))
        return {
            candidate_id: {
                'groups_count': groups.get(candidate_id, 0),
                'leaders_count': leaders.get(candidate_id, 0),
                'voters_count': voters.get(candidate_id, 0),
            }
            for candidate_id in ids
        }

    def list(self, filters: Dict[str, Any], page: int, page_size: int):
        query = self._filtered_query(filters).order_by(Candidate.name, Candidate.id)
        return paginate(query, page, page_size)

    def _check_unique(self, data: Dict[str, Any], exclude_id: int = None):
        for field in ('email', 'name'):
            value = data.get(field)
            if not value:
                continue
            column = getattr(Candidate, field)
            query = self.session.query(Candidate).filter(func.lower(column) == value.lower())
            if exclude_id is not None:
                query = query.filter(Candidate.id != exclude_id)
            if query.first():
                raise ConflictError(
                    f"A candidate with {field} '{value}' already exists",
                    detail={'field': field, 'value': value}
                )

    def create(self, data: Dict[str, Any]) -> Candidate:
        self._check_unique(data)
        candidate = Candidate(**data)
        self.session.add(candidate)
        self.session.commit()
        self.session.refresh(candidate)
        logger.info(f"Created candidate {candidate.id} '{candidate.name}'")
        return candidate

    def update(self, candidate_id: int, data: Dict[str, Any]) -> Candidate:
        candidate = self.get(candidate_id)
        self._check_unique(data, exclude_id=candidate_id)
        for field, value in data.items():
            setattr(candidate, field, value)
        self.session.commit()
        self.session.refresh(candidate)
        return candidate

    def _check_deletable(self, candidates: List[Candidate]):
        # Groups require a candidate, so any group (active or not) blocks deletion
        groups = count_by(self.session, Group.candidate_id, [c.id for c in candidates])
        blocked = [c for c in candidates if groups.get(c.id)]
        if blocked:
            active_groups = dict(
                self.session.query(Group.candidate_id, func.count(Group.id))
                .filter(Group.candidate_id.in_([c.id for c in blocked]), Group.is_active.is_(True))
                .group_by(Group.candidate_id)
                .all()
            )
            names = ', '.join(
                f"{c.name} ({groups[c.id]} groups, {active_groups.get(c.id, 0)} active)" for c in blocked
            )
            raise BusinessRuleError(
                f"Cannot delete candidates with associated groups: {names}",
                detail={'candidate_ids': [c.id for c in blocked]}
            )

    def delete(self, candidate_id: int):
        candidate = self.get(candidate_id)
        self._check_deletable([candidate])
        self.session.delete(candidate)
        self.session.commit()
        logger.info(f"Deleted candidate {candidate_id}")

    def bulk_action(self, action: str, ids: List[int]) -> int:
        query = self.session.query(Candidate).filter(Candidate.id.in_(ids))
        if action in ('activate', 'deactivate'):
            affected = query.update({Candidate.is_active: action == 'activate'}, synchronize_session=False)
        elif action == 'delete':
            candidates = query.all()
            self._check_deletable(candidates)
            for candidate in candidates:
                self.session.delete(candidate)
            affected = len(candidates)
        else:
            raise BusinessRuleError(f"Unsupported action '{action}' for candidates")
        self.session.commit()
        logger.info(f"Bulk {action} on {affected} candidates")
        return affected

    def stats(self, filters: Dict[str, Any]) -> Dict[str, Any]:
        candidates = self._filtered_query(filters).order_by(Candidate.name).all()
        ids = [c.id for c in candidates]
        counts = self.counts(ids)

        total = len(candidates)
        active = sum(1 for c in candidates if c.is_active)
        total_groups = sum(c['groups_count'] for c in counts.values())
        total_leaders = sum(c['leaders_count'] for c in counts.values())
        total_voters = sum(c['voters_count'] for c in counts.values())

        goal_progress = sorted(
            [
                {
                    'candidate_id': c.id,
                    'name': c.name,
                    'meta': c.meta,
                    'current': counts[c.id]['voters_count'],
                    'percentage': goal_percentage(counts[c.id]['voters_count'], c.meta),
                }
                for c in candidates
            ],
            key=lambda item: item['percentage'],
            reverse=True
        )

        top_candidates = sorted(
            [
                {
                    'candidate_id': c.id,
                    'name': c.name,
                    'groups': counts[c.id]['groups_count'],
                    'leaders': counts[c.id]['leaders_count'],
                    'voters': counts[c.id]['voters_count'],
                }
                for c in candidates
            ],
            key=lambda item: item['voters'],
            reverse=True
        )[:10]

        return {
            'total': total,
            'active': active,
            'inactive': total - active,
            'total_groups': total_groups,
            'total_leaders': total_leaders,
            'total_voters': total_voters,
            'avg_groups_per_candidate': average(total_groups, total),
            'by_party': label_counts([(c.party, 1) for c in candidates], 'Sin partido'),
            'by_position': label_counts([(c.position, 1) for c in candidates], 'Sin definir'),
            'goal_progress': goal_progress,
            'top_candidates': top_candidates,
        }

    def export_rows(self, filters: Dict[str, Any]) -> List[List[Any]]:
        candidates = self._filtered_query(filters).order_by(Candidate.name).all()
        counts = self.counts([c.id for c in candidates])
        rows = []
        for c in candidates:
            voters = counts[c.id]['voters_count']
            rows.append([
                c.id,
                c.name,
                c.email,
                c.phone or '',
                c.position or '',
                c.party or '',
                c.meta,
                voters,
                goal_percentage(voters, c.meta),
                counts[c.id]['groups_count'],
                counts[c.id]['leaders_count'],
                'Activo' if c.is_active else 'Inactivo',
                c.created_at.strftime('%Y-%m-%d') if c.created_at else '',
            ])
        return rows
