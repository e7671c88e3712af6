"""
Location Service - hierarchy management for administrative areas.

Locations form a tree (department > municipality > neighborhood/zone).
The parent relation is kept acyclic by checking every reparent against a
directed graph of the current parent edges.
"""

import logging
from typing import Any, Dict, List, Optional

import networkx as nx
from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.schema import Location, LocationType
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.query_utils import apply_date_range, paginate, search_clause

logger = logging.getLogger(__name__)

LOCATION_EXPORT_HEADERS = [
    'ID', 'Nombre', 'Tipo', 'Código', 'Padre', 'Latitud', 'Longitud',
    'Población', 'Estado', 'Fecha de Creación'
]


class LocationHierarchy:
    """
    Directed graph of locations with edges child -> parent.

    Ancestors of a node are reachable from it; descendants reach it.
    """

    def __init__(self):
        self.graph = nx.DiGraph()

    @classmethod
    def from_pairs(cls, pairs) -> 'LocationHierarchy':
        """Build from (location_id, parent_id) pairs."""
        hierarchy = cls()
        for location_id, parent_id in pairs:
            hierarchy.graph.add_node(location_id)
            if parent_id is not None:
                hierarchy.graph.add_edge(location_id, parent_id)
        return hierarchy

    def would_create_cycle(self, location_id: int, new_parent_id: Optional[int]) -> bool:
        """True when making `new_parent_id` the parent of `location_id` closes a loop."""
        if new_parent_id is None:
            return False
        if new_parent_id == location_id:
            return True
        return new_parent_id in self.descendants(location_id)

    def ancestors(self, location_id: int) -> List[int]:
        """Ancestor ids ordered from the direct parent up to the root."""
        chain = []
        current = location_id
        while True:
            parents = list(self.graph.successors(current))
            if not parents:
                return chain
            current = parents[0]
            chain.append(current)

    def descendants(self, location_id: int) -> set:
        """Ids of every location below `location_id`."""
        if location_id not in self.graph:
            return set()
        return nx.ancestors(self.graph, location_id)

    def depth(self) -> int:
        """Number of levels in the deepest branch (0 when empty)."""
        if self.graph.number_of_nodes() == 0 or not nx.is_directed_acyclic_graph(self.graph):
            return 0
        return nx.dag_longest_path_length(self.graph) + 1

    def cycles(self) -> List[List[int]]:
        return [list(c) for c in nx.strongly_connected_components(self.graph) if len(c) > 1]


class LocationService:
    """Framework-agnostic business logic for locations."""

    def __init__(self, db_session: Session):
        self.session = db_session

    def _hierarchy(self) -> LocationHierarchy:
        hierarchy = LocationHierarchy.from_pairs(
            self.session.query(Location.id, Location.parent_id).all()
        )
        cycles = hierarchy.cycles()
        if cycles:
            logger.error(f"Location hierarchy contains cycles: {cycles}")
        return hierarchy

    def get(self, location_id: int) -> Location:
        location = self.session.get(Location, location_id)
        if not location:
            raise NotFoundError(f"Location {location_id} not found")
        return location

    def _check_code_unique(self, code: Optional[str], exclude_id: Optional[int] = None):
        if not code:
            return
        query = self.session.query(Location).filter(Location.code == code)
        if exclude_id is not None:
            query = query.filter(Location.id != exclude_id)
        existing = query.first()
        if existing:
            raise ConflictError(
                f"Location code '{code}' is already used by '{existing.name}'",
                detail={'code': code, 'location_id': existing.id}
            )

    def _check_parent(self, parent_id: Optional[int]):
        if parent_id is not None and not self.session.get(Location, parent_id):
            raise NotFoundError(f"Parent location {parent_id} not found")

    def create(self, data: Dict[str, Any]) -> Location:
        data = dict(data)
        data['code'] = data.get('code') or None
        self._check_code_unique(data['code'])
        self._check_parent(data.get('parent_id'))

        location = Location(**data)
        self.session.add(location)
        self.session.commit()
        self.session.refresh(location)
        logger.info(f"Created location {location.id} ({location.type} '{location.name}')")
        return location

    def update(self, location_id: int, data: Dict[str, Any]) -> Location:
        location = self.get(location_id)

        if 'code' in data:
            data['code'] = data['code'] or None
            self._check_code_unique(data['code'], exclude_id=location_id)

        if 'parent_id' in data and data['parent_id'] != location.parent_id:
            new_parent_id = data['parent_id']
            self._check_parent(new_parent_id)
            if self._hierarchy().would_create_cycle(location_id, new_parent_id):
                raise BusinessRuleError(
                    f"Moving location {location_id} under {new_parent_id} would create a cycle",
                    detail={'location_id': location_id, 'parent_id': new_parent_id}
                )
            logger.info(f"Reparenting location {location_id}: {location.parent_id} -> {new_parent_id}")

        for field, value in data.items():
            setattr(location, field, value)

        self.session.commit()
        self.session.refresh(location)
        return location

    def set_active(self, location_id: int, is_active: bool) -> Location:
        location = self.get(location_id)
        location.is_active = is_active
        self.session.commit()
        self.session.refresh(location)
        logger.info(f"Location {location_id} {'activated' if is_active else 'deactivated'}")
        return location

    def bulk_set_active(self, ids: List[int], is_active: bool) -> int:
        affected = self.session.query(Location).filter(Location.id.in_(ids)).update(
            {Location.is_active: is_active}, synchronize_session=False
        )
        self.session.commit()
        return affected

    def _filtered_query(self, filters: Dict[str, Any]):
        query = self.session.query(Location)
        clause = search_clause(filters.get('search'), Location.name, Location.code)
        if clause is not None:
            query = query.filter(clause)
        if filters.get('type'):
            query = query.filter(Location.type == filters['type'])
        if filters.get('parent_id') is not None:
            query = query.filter(Location.parent_id == filters['parent_id'])
        if filters.get('roots_only'):
            query = query.filter(Location.parent_id.is_(None))
        if filters.get('is_active') is not None:
            query = query.filter(Location.is_active == filters['is_active'])
        return apply_date_range(query, Location.created_at, filters.get('date_from'), filters.get('date_to'))

    def children_counts(self, ids: List[int]) -> Dict[int, int]:
        if not ids:
            return {}
        rows = self.session.query(Location.parent_id, func.count(Location.id))\
            .filter(Location.parent_id.in_(ids))\
            .group_by(Location.parent_id)\
            .all()
        return {parent_id: count for parent_id, count in rows}

    def list(self, filters: Dict[str, Any], page: int, page_size: int):
        query = self._filtered_query(filters).order_by(Location.name, Location.id)
        return paginate(query, page, page_size)

    def all(self, filters: Dict[str, Any]) -> List[Location]:
        return self._filtered_query(filters).order_by(Location.name, Location.id).all()

    def ancestors(self, location_id: int) -> List[Location]:
        """Ancestors ordered from the root down to the direct parent."""
        ids = self._hierarchy().ancestors(location_id)
        if not ids:
            return []
        by_id = {loc.id: loc for loc in self.session.query(Location).filter(Location.id.in_(ids))}
        return [by_id[i] for i in reversed(ids)]

    def children(self, location_id: int, include_inactive: bool = True) -> List[Location]:
        self.get(location_id)
        query = self.session.query(Location).filter(Location.parent_id == location_id)
        if not include_inactive:
            query = query.filter(Location.is_active.is_(True))
        return query.order_by(Location.name).all()

    def tree(self, root_id: Optional[int] = None, include_inactive: bool = False) -> List[Dict[str, Any]]:
        """
        Build the nested location tree.

        Args:
            root_id: Restrict to the subtree under this location
            include_inactive: Keep disabled locations (and their subtrees)

        Returns:
            List of root nodes, each {id, name, type, code, is_active, children}
        """
        query = self.session.query(Location)
        if not include_inactive:
            query = query.filter(Location.is_active.is_(True))
        locations = query.order_by(Location.name).all()

        nodes = {
            loc.id: {
                'id': loc.id,
                'name': loc.name,
                'type': loc.type,
                'code': loc.code,
                'is_active': loc.is_active,
                'population': loc.population,
                'children': []
            }
            for loc in locations
        }
        roots = []
        for loc in locations:
            if loc.parent_id is not None and loc.parent_id in nodes:
                nodes[loc.parent_id]['children'].append(nodes[loc.id])
            elif loc.parent_id is None:
                roots.append(nodes[loc.id])

        if root_id is not None:
            self.get(root_id)
            return [nodes[root_id]] if root_id in nodes else []
        return roots

    def stats(self, filters: Dict[str, Any]) -> Dict[str, Any]:
        query = self._filtered_query(filters)
        total = query.count()
        active = query.filter(Location.is_active.is_(True)).count()

        by_type = {t.value: 0 for t in LocationType}
        population_by_type = {t.value: 0 for t in LocationType}
        rows = query.with_entities(Location.type, func.count(Location.id), func.coalesce(func.sum(Location.population), 0))\
            .group_by(Location.type)\
            .all()
        for location_type, count, population in rows:
            by_type[location_type] = count
            population_by_type[location_type] = int(population)

        roots = query.filter(Location.parent_id.is_(None)).count()

        return {
            'total': total,
            'active': active,
            'inactive': total - active,
            'by_type': by_type,
            'population_by_type': population_by_type,
            'roots': roots,
            'max_depth': self._hierarchy().depth(),
        }

    def export_rows(self, filters: Dict[str, Any]) -> List[List[Any]]:
        rows = []
        for loc in self.all(filters):
            rows.append([
                loc.id,
                loc.name,
                loc.type,
                loc.code or '',
                loc.parent.name if loc.parent else '',
                float(loc.latitude) if loc.latitude is not None else '',
                float(loc.longitude) if loc.longitude is not None else '',
                loc.population,
                'Activo' if loc.is_active else 'Inactivo',
                loc.created_at.strftime('%Y-%m-%d') if loc.created_at else '',
            ])
        return rows
