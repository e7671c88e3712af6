"""
Planillado Service - canvassed voter records.

Besides CRUD this covers the pending-leader workflow: a planillado imported
with the cedula of a leader that is not registered yet keeps that cedula in
`pending_leader_cedula` until the leader exists and the records are linked.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, joinedload

from backend.models.schema import (
    AGE_RANGES, UNDEFINED_AGE_RANGE, Group, Leader, Planillado, PlanilladoStatus,
    age_range_for, calculate_age
)
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.notification_service import PENDING_PLANILLADOS_LINKED, NotificationService
from services.query_utils import apply_date_range, label_counts, paginate, search_clause
from services.validation_service import MIN_VOTING_AGE

logger = logging.getLogger(__name__)

PLANILLADO_EXPORT_HEADERS = [
    'Cédula', 'Nombres', 'Apellidos', 'Celular', 'Dirección', 'Barrio',
    'Fecha de Expedición', 'Departamento de Votación', 'Municipio de Votación',
    'Dirección de Votación', 'Zona y Puesto', 'Mesa', 'Estado', 'Edil', 'Líder',
    'Grupo', 'Género', 'Edad', 'Rango de Edad', 'Notas', 'Fecha de Creación'
]

FILTER_KEYS = (
    'search', 'status', 'neighborhood', 'leader_id', 'group_id', 'is_edil', 'gender',
    'age_range', 'voting_municipality', 'is_updated', 'date_from', 'date_to'
)


def years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # February 29th
        return day.replace(year=day.year - years, day=28)


class PlanilladoService:
    """Framework-agnostic business logic for planillados."""

    def __init__(self, db_session: Session, notifier: Optional[NotificationService] = None):
        self.session = db_session
        self.notifier = notifier

    def get(self, planillado_id: int) -> Planillado:
        planillado = self.session.get(Planillado, planillado_id)
        if not planillado:
            raise NotFoundError(f"Planillado {planillado_id} not found")
        return planillado

    def find_by_cedula(self, cedula: str) -> Optional[Planillado]:
        return self.session.query(Planillado).filter(Planillado.cedula == cedula).first()

    @staticmethod
    def has_filters(filters: Dict[str, Any]) -> bool:
        return any(filters.get(key) not in (None, '') for key in FILTER_KEYS)

    def _age_range_clause(self, label: str, today: Optional[date] = None):
        today = today or date.today()
        if label == UNDEFINED_AGE_RANGE:
            return Planillado.birth_date.is_(None)
        for name, low, high in AGE_RANGES:
            if name == label:
                clause = Planillado.birth_date <= years_before(today, low)
                if high is not None:
                    clause = clause & (Planillado.birth_date > years_before(today, high + 1))
                return clause
        raise BusinessRuleError(f"Unknown age range '{label}'")

    def _filtered_query(self, filters: Dict[str, Any]):
        query = self.session.query(Planillado)
        clause = search_clause(
            filters.get('search'),
            Planillado.cedula, Planillado.first_name, Planillado.last_name, Planillado.mobile
        )
        if clause is not None:
            query = query.filter(clause)
        for field in ('status', 'neighborhood', 'gender', 'voting_municipality'):
            if filters.get(field):
                query = query.filter(getattr(Planillado, field) == filters[field])
        for field in ('leader_id', 'group_id', 'is_edil', 'is_updated'):
            if filters.get(field) is not None:
                query = query.filter(getattr(Planillado, field) == filters[field])
        if filters.get('age_range'):
            query = query.filter(self._age_range_clause(filters['age_range']))
        return apply_date_range(query, Planillado.created_at, filters.get('date_from'), filters.get('date_to'))

    def list(self, filters: Dict[str, Any], page: int, page_size: int):
        query = self._filtered_query(filters)\
            .options(joinedload(Planillado.leader), joinedload(Planillado.group))\
            .order_by(Planillado.updated_at.desc(), Planillado.id.desc())
        return paginate(query, page, page_size)

    def by_leader(self, leader_id: int, page: int, page_size: int):
        return self.list({'leader_id': leader_id}, page, page_size)

    def _check_cedula(self, cedula: Optional[str], exclude_id: Optional[int] = None):
        if not cedula:
            return
        query = self.session.query(Planillado).filter(Planillado.cedula == cedula)
        if exclude_id is not None:
            query = query.filter(Planillado.id != exclude_id)
        existing = query.first()
        if existing:
            raise ConflictError(
                f"A planillado with cedula {cedula} already exists",
                detail={'cedula': cedula, 'planillado_id': existing.id}
            )

    def _resolve_relations(self, data: Dict[str, Any]):
        """Check leader/group references; a leader without group brings its own group."""
        leader = None
        if data.get('leader_id') is not None:
            leader = self.session.get(Leader, data['leader_id'])
            if not leader:
                raise BusinessRuleError(f"Leader {data['leader_id']} does not exist")
            data['pending_leader_cedula'] = None
        if data.get('group_id') is not None:
            if not self.session.get(Group, data['group_id']):
                raise BusinessRuleError(f"Group {data['group_id']} does not exist")
        elif leader is not None and 'group_id' not in data:
            data['group_id'] = leader.group_id

    def create(self, data: Dict[str, Any]) -> Planillado:
        data = dict(data)
        self._check_cedula(data.get('cedula'))
        self._resolve_relations(data)
        data['status'] = PlanilladoStatus.PENDING.value
        data['is_updated'] = True

        planillado = Planillado(**data)
        self.session.add(planillado)
        self.session.commit()
        self.session.refresh(planillado)
        logger.info(f"Created planillado {planillado.id} ({planillado.cedula})")
        return planillado

    def update(self, planillado_id: int, data: Dict[str, Any]) -> Planillado:
        planillado = self.get(planillado_id)
        data = dict(data)
        if 'cedula' in data:
            self._check_cedula(data['cedula'], exclude_id=planillado_id)
        self._resolve_relations(data)
        for field, value in data.items():
            setattr(planillado, field, value)
        self.session.commit()
        self.session.refresh(planillado)
        return planillado

    def delete(self, planillado_id: int):
        planillado = self.get(planillado_id)
        self.session.delete(planillado)
        self.session.commit()
        logger.info(f"Deleted planillado {planillado_id}")

    def bulk_action(self, action: str, ids: List[int], leader_id: Optional[int] = None,
                    group_id: Optional[int] = None) -> int:
        query = self.session.query(Planillado).filter(Planillado.id.in_(ids))

        if action == 'verify':
            values = {Planillado.status: PlanilladoStatus.VERIFIED.value, Planillado.is_updated: True}
        elif action == 'unverify':
            values = {Planillado.status: PlanilladoStatus.PENDING.value}
        elif action == 'assign_leader':
            if leader_id is None:
                raise BusinessRuleError('leader_id is required to assign a leader')
            leader = self.session.get(Leader, leader_id)
            if not leader:
                raise NotFoundError(f"Leader {leader_id} not found")
            values = {
                Planillado.leader_id: leader_id,
                Planillado.group_id: leader.group_id,
                Planillado.pending_leader_cedula: None,
            }
        elif action == 'assign_group':
            if group_id is None:
                raise BusinessRuleError('group_id is required to assign a group')
            if not self.session.get(Group, group_id):
                raise NotFoundError(f"Group {group_id} not found")
            values = {Planillado.group_id: group_id}
        elif action == 'delete':
            affected = query.delete(synchronize_session=False)
            self.session.commit()
            logger.info(f"Bulk delete on {affected} planillados")
            return affected
        else:
            raise BusinessRuleError(f"Unsupported action '{action}' for planillados")

        affected = query.update(values, synchronize_session=False)
        self.session.commit()
        logger.info(f"Bulk {action} on {affected} planillados")
        return affected

    def stats(self, filters: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        start_of_day = datetime.combine(today, time.min)
        query = self._filtered_query(filters)

        total = query.count()
        verified = query.filter(Planillado.status == PlanilladoStatus.VERIFIED.value).count()
        ediles = query.filter(Planillado.is_edil.is_(True)).count()

        count_column = func.count(Planillado.id)
        by_neighborhood_rows = query.with_entities(Planillado.neighborhood, count_column)\
            .filter(Planillado.neighborhood.isnot(None))\
            .group_by(Planillado.neighborhood)\
            .order_by(count_column.desc(), Planillado.neighborhood)\
            .limit(10)\
            .all()

        by_gender_rows = query.with_entities(Planillado.gender, count_column)\
            .group_by(Planillado.gender)\
            .all()

        by_age = {label: 0 for label, _, _ in AGE_RANGES}
        for (birth_date,) in query.with_entities(Planillado.birth_date).filter(Planillado.birth_date.isnot(None)):
            age = calculate_age(birth_date, today)
            if age is not None and age >= MIN_VOTING_AGE:
                by_age[age_range_for(age)] += 1

        by_leader_rows = query.join(Leader, Planillado.leader_id == Leader.id)\
            .with_entities(Leader.id, Leader.first_name, Leader.last_name, count_column)\
            .group_by(Leader.id, Leader.first_name, Leader.last_name)\
            .order_by(count_column.desc(), Leader.id)\
            .limit(10)\
            .all()

        by_group_rows = query.outerjoin(Group, Planillado.group_id == Group.id)\
            .with_entities(Group.name, count_column)\
            .group_by(Group.name)\
            .all()

        return {
            'total': total,
            'verified': verified,
            'pending': total - verified,
            'ediles': ediles,
            'by_neighborhood': {name: count for name, count in by_neighborhood_rows},
            'by_gender': label_counts(by_gender_rows, 'Sin definir'),
            'by_age': by_age,
            'by_leader': [
                {'leader_id': leader_id, 'name': f"{first} {last}", 'count': count}
                for leader_id, first, last, count in by_leader_rows
            ],
            'by_group': label_counts(by_group_rows, 'Sin grupo'),
            'new_today': query.filter(Planillado.created_at >= start_of_day).count(),
            'new_this_week': query.filter(Planillado.created_at >= start_of_day - timedelta(days=7)).count(),
            'updated_today': query.filter(Planillado.updated_at >= start_of_day).count(),
        }

    def _distinct_values(self, column) -> List[str]:
        rows = self.session.query(column).filter(column.isnot(None), column != '')\
            .distinct()\
            .order_by(column)\
            .all()
        return [value for (value,) in rows]

    def neighborhoods(self) -> List[str]:
        return self._distinct_values(Planillado.neighborhood)

    def municipalities(self) -> List[str]:
        return self._distinct_values(Planillado.voting_municipality)

    def neighborhood_stats(self) -> List[Dict[str, Any]]:
        """Per-neighborhood totals used by the map view."""
        verified_case = func.sum(case((Planillado.status == PlanilladoStatus.VERIFIED.value, 1), else_=0))
        rows = self.session.query(
            Planillado.neighborhood,
            func.count(Planillado.id),
            verified_case,
            func.sum(case((Planillado.is_edil.is_(True), 1), else_=0)),
            func.count(func.distinct(Planillado.leader_id)),
            func.count(func.distinct(Planillado.group_id)),
        )\
            .filter(Planillado.neighborhood.isnot(None))\
            .group_by(Planillado.neighborhood)\
            .order_by(func.count(Planillado.id).desc())\
            .all()

        grand_total = sum(row[1] for row in rows) or 1
        return [
            {
                'neighborhood': neighborhood,
                'total': total,
                'verified': int(verified or 0),
                'pending': total - int(verified or 0),
                'ediles': int(ediles or 0),
                'leaders': leaders,
                'groups': groups,
                'percentage': round(total / grand_total * 100, 2),
            }
            for neighborhood, total, verified, ediles, leaders, groups in rows
        ]

    # Pending leader workflow

    def pending_for_leader(self, cedula: str) -> List[Planillado]:
        return self.session.query(Planillado)\
            .filter(Planillado.pending_leader_cedula == cedula)\
            .order_by(Planillado.last_name, Planillado.first_name)\
            .all()

    def link_pending(self, leader_cedula: str, leader_id: int,
                     planillado_ids: Optional[List[int]] = None) -> int:
        """
        Attach planillados waiting for `leader_cedula` to the leader.

        Args:
            leader_cedula: Cedula stored on the pending records
            leader_id: Registered leader to link them to
            planillado_ids: Restrict to these records (all pending ones otherwise)

        Returns:
            Number of planillados linked
        """
        leader = self.session.get(Leader, leader_id)
        if not leader:
            raise NotFoundError(f"Leader {leader_id} not found")
        if leader.cedula != leader_cedula:
            raise BusinessRuleError(
                f"Leader {leader_id} has cedula {leader.cedula}, not {leader_cedula}"
            )

        query = self.session.query(Planillado).filter(Planillado.pending_leader_cedula == leader_cedula)
        if planillado_ids:
            query = query.filter(Planillado.id.in_(planillado_ids))
        affected = query.update(
            {
                Planillado.leader_id: leader_id,
                Planillado.group_id: func.coalesce(Planillado.group_id, leader.group_id),
                Planillado.pending_leader_cedula: None,
            },
            synchronize_session=False
        )
        self.session.commit()
        logger.info(f"Linked {affected} pending planillados to leader {leader_id}")

        if affected and self.notifier:
            self.notifier.publish(PENDING_PLANILLADOS_LINKED, {
                'leader_id': leader_id,
                'leader_name': leader.full_name,
                'linked_count': affected,
            })
        return affected

    def pending_stats(self) -> Dict[str, Any]:
        count_column = func.count(Planillado.id)
        rows = self.session.query(Planillado.pending_leader_cedula, count_column)\
            .filter(Planillado.pending_leader_cedula.isnot(None))\
            .group_by(Planillado.pending_leader_cedula)\
            .order_by(count_column.desc())\
            .all()
        registered = {
            cedula for (cedula,) in self.session.query(Leader.cedula)
            .filter(Leader.cedula.in_([cedula for cedula, _ in rows]))
        } if rows else set()

        total_pending = sum(count for _, count in rows)
        without_leader = self.session.query(func.count(Planillado.id))\
            .filter(Planillado.leader_id.is_(None), Planillado.pending_leader_cedula.is_(None))\
            .scalar() or 0

        return {
            'total_pending': total_pending,
            'by_leader_cedula': [
                {'leader_cedula': cedula, 'count': count, 'leader_registered': cedula in registered}
                for cedula, count in rows
            ],
            'without_leader': without_leader,
            'summary': {
                'distinct_leader_cedulas': len(rows),
                'ready_to_link': sum(count for cedula, count in rows if cedula in registered),
            },
        }

    def clear_pending(self) -> int:
        """Drop pending leader cedulas that match no registered leader."""
        registered = select(Leader.cedula)
        affected = self.session.query(Planillado)\
            .filter(Planillado.pending_leader_cedula.isnot(None))\
            .filter(Planillado.pending_leader_cedula.notin_(registered))\
            .update({Planillado.pending_leader_cedula: None}, synchronize_session=False)
        self.session.commit()
        logger.info(f"Cleared {affected} orphan pending leader cedulas")
        return affected

    # Export

    def _export_row(self, p: Planillado) -> List[Any]:
        age = p.age
        return [
            p.cedula,
            p.first_name,
            p.last_name,
            p.mobile or '',
            p.address or '',
            p.neighborhood or '',
            p.id_issue_date.strftime('%d/%m/%Y') if p.id_issue_date else '',
            p.voting_department or '',
            p.voting_municipality or '',
            p.voting_address or '',
            p.polling_station or '',
            p.table_number or '',
            'Verificado' if p.status == PlanilladoStatus.VERIFIED.value else 'Pendiente',
            p.is_edil,
            p.leader.full_name if p.leader else '',
            p.group.name if p.group else '',
            p.gender or '',
            age if age is not None else '',
            age_range_for(age),
            p.notes or '',
            p.created_at.strftime('%Y-%m-%d') if p.created_at else '',
        ]

    def export_rows(self, filters: Dict[str, Any]) -> List[List[Any]]:
        planillados = self._filtered_query(filters)\
            .options(joinedload(Planillado.leader), joinedload(Planillado.group))\
            .order_by(Planillado.last_name, Planillado.first_name)\
            .all()
        return [self._export_row(p) for p in planillados]

    def export_rows_by_ids(self, ids: List[int]) -> List[List[Any]]:
        planillados = self.session.query(Planillado)\
            .options(joinedload(Planillado.leader), joinedload(Planillado.group))\
            .filter(Planillado.id.in_(ids))\
            .order_by(Planillado.last_name, Planillado.first_name)\
            .all()
        return [self._export_row(p) for p in planillados]
