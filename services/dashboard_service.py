"""
Dashboard Service - campaign-wide totals for the home screen.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.schema import Candidate, Group, Leader, Location, Planillado, PlanilladoStatus
from services.query_utils import goal_percentage

logger = logging.getLogger(__name__)


class DashboardService:

    def __init__(self, db_session: Session):
        self.session = db_session

    def _totals(self, model) -> Dict[str, int]:
        total = self.session.query(func.count(model.id)).scalar() or 0
        active = self.session.query(func.count(model.id)).filter(model.is_active.is_(True)).scalar() or 0
        return {'total': total, 'active': active}

    def stats(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Aggregate counts across all entities.

        Returns:
            {candidates, groups, leaders, locations, planillados, goal,
            recent_activity}
        """
        today = today or date.today()
        start_of_day = datetime.combine(today, time.min)
        start_of_week = datetime.combine(today - timedelta(days=6), time.min)

        planillados_total = self.session.query(func.count(Planillado.id)).scalar() or 0
        verified = self.session.query(func.count(Planillado.id))\
            .filter(Planillado.status == PlanilladoStatus.VERIFIED.value)\
            .scalar() or 0
        ediles = self.session.query(func.count(Planillado.id))\
            .filter(Planillado.is_edil.is_(True))\
            .scalar() or 0

        leaders = self._totals(Leader)
        leaders['verified'] = self.session.query(func.count(Leader.id))\
            .filter(Leader.is_verified.is_(True))\
            .scalar() or 0

        locations = self._totals(Location)
        locations['by_type'] = {
            kind: count for kind, count in
            self.session.query(Location.type, func.count(Location.id)).group_by(Location.type).all()
        }

        total_meta = self.session.query(func.coalesce(func.sum(Candidate.meta), 0))\
            .filter(Candidate.is_active.is_(True))\
            .scalar() or 0

        def created_since(model, since):
            return self.session.query(func.count(model.id)).filter(model.created_at >= since).scalar() or 0

        return {
            'candidates': self._totals(Candidate),
            'groups': self._totals(Group),
            'leaders': leaders,
            'locations': locations,
            'planillados': {
                'total': planillados_total,
                'verified': verified,
                'pending': planillados_total - verified,
                'ediles': ediles,
            },
            'goal': {
                'total_meta': int(total_meta),
                'current': planillados_total,
                'percentage': goal_percentage(planillados_total, int(total_meta)),
            },
            'recent_activity': {
                'planillados_today': created_since(Planillado, start_of_day),
                'planillados_week': created_since(Planillado, start_of_week),
                'leaders_today': created_since(Leader, start_of_day),
                'leaders_week': created_since(Leader, start_of_week),
            },
        }
