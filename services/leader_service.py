"""
Leader Service - canvassing leaders and their recruited planillados.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from backend.models.schema import Group, Leader, Planillado
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.notification_service import LEADER_WITH_PENDING_PLANILLADOS, NotificationService
from services.query_utils import (
    apply_date_range, count_by, label_counts, paginate, round_half_up, search_clause
)

logger = logging.getLogger(__name__)

LEADER_EXPORT_HEADERS = [
    'ID', 'Cédula', 'Nombres', 'Apellidos', 'Celular', 'Email', 'Dirección',
    'Barrio', 'Municipio', 'Género', 'Meta', 'Planillados', 'Grupo',
    'Verificado', 'Estado', 'Fecha de Creación'
]

LEADER_BULK_ACTIONS = ('activate', 'deactivate', 'verify', 'unverify', 'assign_group', 'delete')


class LeaderService:
    """Framework-agnostic business logic for leaders."""

    def __init__(self, db_session: Session, notifier: Optional[NotificationService] = None):
        self.session = db_session
        self.notifier = notifier

    def get(self, leader_id: int) -> Leader:
        leader = self.session.get(Leader, leader_id)
        if not leader:
            raise NotFoundError(f"Leader {leader_id} not found")
        return leader

    def find_by_cedula(self, cedula: str) -> Optional[Leader]:
        return self.session.query(Leader).filter(Leader.cedula == cedula).first()

    def _filtered_query(self, filters: Dict[str, Any]):
        query = self.session.query(Leader).options(joinedload(Leader.group))
        clause = search_clause(filters.get('search'), Leader.first_name, Leader.last_name, Leader.cedula)
        if clause is not None:
            query = query.filter(clause)
        for field in ('is_active', 'is_verified', 'group_id'):
            if filters.get(field) is not None:
                query = query.filter(getattr(Leader, field) == filters[field])
        for field in ('neighborhood', 'municipality', 'gender'):
            if filters.get(field):
                query = query.filter(getattr(Leader, field) == filters[field])
        return apply_date_range(query, Leader.created_at, filters.get('date_from'), filters.get('date_to'))

    def planillados_counts(self, ids: List[int]) -> Dict[int, int]:
        return count_by(self.session, Planillado.leader_id, ids)

    def list(self, filters: Dict[str, Any], page: int, page_size: int):
        query = self._filtered_query(filters).order_by(Leader.last_name, Leader.first_name, Leader.id)
        return paginate(query, page, page_size)

    def for_select(self) -> List[Dict[str, Any]]:
        leaders = self.session.query(Leader)\
            .options(joinedload(Leader.group))\
            .filter(Leader.is_active.is_(True))\
            .order_by(Leader.first_name, Leader.last_name)\
            .all()
        return [
            {
                'id': leader.id,
                'name': leader.full_name,
                'group_name': leader.group.name if leader.group else None,
            }
            for leader in leaders
        ]

    def _check_cedula(self, cedula: Optional[str], exclude_id: Optional[int] = None):
        if not cedula:
            return
        query = self.session.query(Leader).filter(Leader.cedula == cedula)
        if exclude_id is not None:
            query = query.filter(Leader.id != exclude_id)
        existing = query.first()
        if existing:
            raise ConflictError(
                f"A leader with cedula {cedula} already exists",
                detail={'cedula': cedula, 'leader_id': existing.id}
            )

    def _check_group(self, group_id: Optional[int]):
        if group_id is not None and not self.session.get(Group, group_id):
            raise BusinessRuleError(f"Group {group_id} does not exist")

    def create(self, data: Dict[str, Any]) -> Leader:
        self._check_cedula(data.get('cedula'))
        self._check_group(data.get('group_id'))
        leader = Leader(**data)
        self.session.add(leader)
        self.session.commit()
        self.session.refresh(leader)
        logger.info(f"Created leader {leader.id} ({leader.cedula})")
        self.notify_pending_planillados(leader)
        return leader

    def notify_pending_planillados(self, leader: Leader) -> int:
        """
        Announce planillados that were waiting for this leader's cedula.

        Returns:
            Number of pending planillados found
        """
        pending = self.session.query(func.count(Planillado.id))\
            .filter(Planillado.pending_leader_cedula == leader.cedula)\
            .scalar() or 0
        if pending and self.notifier:
            self.notifier.publish(LEADER_WITH_PENDING_PLANILLADOS, {
                'leader_id': leader.id,
                'leader_cedula': leader.cedula,
                'leader_name': leader.full_name,
                'pending_count': pending,
            })
        return pending

    def update(self, leader_id: int, data: Dict[str, Any]) -> Leader:
        leader = self.get(leader_id)
        if 'cedula' in data:
            self._check_cedula(data['cedula'], exclude_id=leader_id)
        if 'group_id' in data:
            self._check_group(data['group_id'])
        for field, value in data.items():
            setattr(leader, field, value)
        self.session.commit()
        self.session.refresh(leader)
        return leader

    def delete(self, leader_id: int):
        leader = self.get(leader_id)
        count = self.planillados_counts([leader_id]).get(leader_id, 0)
        if count:
            raise BusinessRuleError(
                f"Leader {leader_id} has {count} planillados assigned",
                detail={'leader_id': leader_id}
            )
        self.session.delete(leader)
        self.session.commit()
        logger.info(f"Deleted leader {leader_id}")

    def bulk_action(self, action: str, ids: List[int], group_id: Optional[int] = None) -> int:
        query = self.session.query(Leader).filter(Leader.id.in_(ids))

        if action in ('activate', 'deactivate'):
            affected = query.update({Leader.is_active: action == 'activate'}, synchronize_session=False)
        elif action in ('verify', 'unverify'):
            affected = query.update({Leader.is_verified: action == 'verify'}, synchronize_session=False)
        elif action == 'assign_group':
            if group_id is None:
                raise BusinessRuleError('group_id is required to assign a group')
            if not self.session.get(Group, group_id):
                raise NotFoundError(f"Group {group_id} not found")
            affected = query.update({Leader.group_id: group_id}, synchronize_session=False)
        elif action == 'delete':
            with_planillados = self.planillados_counts(ids)
            if with_planillados:
                raise BusinessRuleError(
                    'Cannot delete leaders that have planillados assigned',
                    detail={'leader_ids': sorted(with_planillados)}
                )
            leaders = query.all()
            for leader in leaders:
                self.session.delete(leader)
            affected = len(leaders)
        else:
            raise BusinessRuleError(f"Unsupported action '{action}' for leaders")

        self.session.commit()
        logger.info(f"Bulk {action} on {affected} leaders")
        return affected

    def stats(self, filters: Dict[str, Any]) -> Dict[str, Any]:
        leaders = self._filtered_query(filters).all()
        counts = self.planillados_counts([leader.id for leader in leaders])

        total = len(leaders)
        total_planillados = sum(counts.values())

        top_leaders = sorted(
            [
                {
                    'leader_id': leader.id,
                    'name': leader.full_name,
                    'planillados': counts.get(leader.id, 0),
                    'meta': leader.meta,
                }
                for leader in leaders
            ],
            key=lambda item: item['planillados'],
            reverse=True
        )[:10]

        return {
            'total': total,
            'active': sum(1 for leader in leaders if leader.is_active),
            'verified': sum(1 for leader in leaders if leader.is_verified),
            'total_planillados': total_planillados,
            'avg_planillados': round_half_up(total_planillados / total) if total else 0,
            'by_group': label_counts(
                [(leader.group.name if leader.group else None, 1) for leader in leaders], 'Sin grupo'
            ),
            'by_neighborhood': label_counts(
                [(leader.neighborhood, 1) for leader in leaders], 'Sin barrio'
            ),
            'top_leaders': top_leaders,
        }

    def export_rows(self, filters: Dict[str, Any]) -> List[List[Any]]:
        leaders = self._filtered_query(filters).order_by(Leader.last_name, Leader.first_name).all()
        counts = self.planillados_counts([leader.id for leader in leaders])
        return [
            [
                leader.id,
                leader.cedula,
                leader.first_name,
                leader.last_name,
                leader.phone or '',
                leader.email or '',
                leader.address or '',
                leader.neighborhood or '',
                leader.municipality or '',
                leader.gender or '',
                leader.meta,
                counts.get(leader.id, 0),
                leader.group.name if leader.group else '',
                leader.is_verified,
                'Activo' if leader.is_active else 'Inactivo',
                leader.created_at.strftime('%Y-%m-%d') if leader.created_at else '',
            ]
            for leader in leaders
        ]
