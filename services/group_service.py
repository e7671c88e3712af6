"""
Group Service - campaign groups under a candidate.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from backend.models.schema import Candidate, Group, Leader, Planillado
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.query_utils import (
    apply_date_range, average, count_by, goal_percentage, label_counts, paginate, search_clause
)

logger = logging.getLogger(__name__)

GROUP_EXPORT_HEADERS = [
    'ID', 'Nombre', 'Descripción', 'Zona', 'Meta', 'Planillados Actuales',
    'Cumplimiento (%)', 'Candidato', 'Líderes Asignados', 'Estado', 'Fecha de Creación'
]


class GroupService:
    """Framework-agnostic business logic for groups."""

    def __init__(self, db_session: Session):
        self.session = db_session

    def get(self, group_id: int) -> Group:
        group = self.session.get(Group, group_id)
        if not group:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    def _filtered_query(self, filters: Dict[str, Any]):
        query = self.session.query(Group).options(joinedload(Group.candidate))
        clause = search_clause(filters.get('search'), Group.name, Group.description, Group.zone)
        if clause is not None:
            query = query.filter(clause)
        if filters.get('candidate_id') is not None:
            query = query.filter(Group.candidate_id == filters['candidate_id'])
        if filters.get('zone'):
            query = query.filter(Group.zone.ilike(f"%{filters['zone']}%"))
        if filters.get('is_active') is not None:
            query = query.filter(Group.is_active == filters['is_active'])
        return apply_date_range(query, Group.created_at, filters.get('date_from'), filters.get('date_to'))

    def counts(self, ids: List[int]) -> Dict[int, Dict[str, int]]:
        leaders = count_by(self.session, Leader.group_id, ids)
        planillados = count_by(self.session, Planillado.group_id, ids)
        return {
            group_id: {
                'leaders_count': leaders.get(group_id, 0),
                'planillados_count': planillados.get(group_id, 0),
            }
            for group_id in ids
        }

    def list(self, filters: Dict[str, Any], page: int, page_size: int):
        query = self._filtered_query(filters).order_by(Group.name, Group.id)
        return paginate(query, page, page_size)

    def _check_candidate(self, candidate_id: int):
        if not self.session.get(Candidate, candidate_id):
            raise BusinessRuleError(f"Candidate {candidate_id} does not exist")

    def _check_unique_name(self, name: str, candidate_id: int, exclude_id: Optional[int] = None):
        query = self.session.query(Group).filter(
            func.lower(Group.name) == name.lower(),
            Group.candidate_id == candidate_id
        )
        if exclude_id is not None:
            query = query.filter(Group.id != exclude_id)
        if query.first():
            raise ConflictError(
                f"Candidate {candidate_id} already has a group named '{name}'",
                detail={'name': name, 'candidate_id': candidate_id}
            )

    def create(self, data: Dict[str, Any]) -> Group:
        self._check_candidate(data['candidate_id'])
        self._check_unique_name(data['name'], data['candidate_id'])
        group = Group(**data)
        self.session.add(group)
        self.session.commit()
        self.session.refresh(group)
        logger.info(f"Created group {group.id} '{group.name}' for candidate {group.candidate_id}")
        return group

    def update(self, group_id: int, data: Dict[str, Any]) -> Group:
        group = self.get(group_id)
        candidate_id = data.get('candidate_id', group.candidate_id)
        if 'candidate_id' in data:
            self._check_candidate(candidate_id)
        if 'name' in data or 'candidate_id' in data:
            self._check_unique_name(data.get('name', group.name), candidate_id, exclude_id=group_id)
        for field, value in data.items():
            setattr(group, field, value)
        self.session.commit()
        self.session.refresh(group)
        return group

    def _check_deletable(self, groups: List[Group]):
        ids = [g.id for g in groups]
        active_leaders = dict(
            self.session.query(Leader.group_id, func.count(Leader.id))
            .filter(Leader.group_id.in_(ids), Leader.is_active.is_(True))
            .group_by(Leader.group_id)
            .all()
        ) if ids else {}
        planillados = count_by(self.session, Planillado.group_id, ids)

        for group in groups:
            if active_leaders.get(group.id):
                raise BusinessRuleError(
                    f"Group '{group.name}' has {active_leaders[group.id]} active leaders",
                    detail={'group_id': group.id}
                )
            if planillados.get(group.id):
                raise BusinessRuleError(
                    f"Group '{group.name}' has {planillados[group.id]} planillados",
                    detail={'group_id': group.id}
                )

    def delete(self, group_id: int):
        group = self.get(group_id)
        self._check_deletable([group])
        self.session.delete(group)
        self.session.commit()
        logger.info(f"Deleted group {group_id}")

    def bulk_action(self, action: str, ids: List[int]) -> int:
        query = self.session.query(Group).filter(Group.id.in_(ids))
        if action in ('activate', 'deactivate'):
            affected = query.update({Group.is_active: action == 'activate'}, synchronize_session=False)
        elif action == 'delete':
            groups = query.all()
            self._check_deletable(groups)
            for group in groups:
                self.session.delete(group)
            affected = len(groups)
        else:
            raise BusinessRuleError(f"Unsupported action '{action}' for groups")
        self.session.commit()
        logger.info(f"Bulk {action} on {affected} groups")
        return affected

    def stats(self, filters: Dict[str, Any]) -> Dict[str, Any]:
        groups = self._filtered_query(filters).order_by(Group.name).all()
        counts = self.counts([g.id for g in groups])

        total = len(groups)
        active = sum(1 for g in groups if g.is_active)
        total_leaders = sum(c['leaders_count'] for c in counts.values())
        total_planillados = sum(c['planillados_count'] for c in counts.values())

        goal_progress = sorted(
            [
                {
                    'group_id': g.id,
                    'name': g.name,
                    'meta': g.meta,
                    'current': counts[g.id]['planillados_count'],
                    'percentage': goal_percentage(counts[g.id]['planillados_count'], g.meta),
                }
                for g in groups
            ],
            key=lambda item: item['percentage'],
            reverse=True
        )

        return {
            'total': total,
            'active': active,
            'inactive': total - active,
            'total_leaders': total_leaders,
            'total_planillados': total_planillados,
            'avg_leaders_per_group': average(total_leaders, total),
            'avg_planillados_per_group': average(total_planillados, total),
            'by_candidate': label_counts(
                [(g.candidate.name if g.candidate else None, 1) for g in groups], 'Sin candidato'
            ),
            'by_zone': label_counts([(g.zone, 1) for g in groups], 'Sin zona'),
            'goal_progress': goal_progress,
        }

    def export_rows(self, filters: Dict[str, Any]) -> List[List[Any]]:
        groups = self._filtered_query(filters).order_by(Group.name).all()
        counts = self.counts([g.id for g in groups])
        rows = []
        for g in groups:
            planillados = counts[g.id]['planillados_count']
            rows.append([
                g.id,
                g.name,
                g.description or '',
                g.zone or '',
                g.meta,
                planillados,
                goal_percentage(planillados, g.meta),
                g.candidate.name if g.candidate else '',
                counts[g.id]['leaders_count'],
                'Activo' if g.is_active else 'Inactivo',
                g.created_at.strftime('%Y-%m-%d') if g.created_at else '',
            ])
        return rows
