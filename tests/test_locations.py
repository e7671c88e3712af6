"""
Tests for the location hierarchy and the locations API.
"""

import pytest

from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.location_service import LocationHierarchy, LocationService


class TestLocationHierarchy:
    """Test the graph helper behind reparenting checks."""

    @pytest.fixture
    def hierarchy(self):
        # 1 > 2 > 3, 1 > 4
        return LocationHierarchy.from_pairs([(1, None), (2, 1), (3, 2), (4, 1)])

    def test_ancestors_go_up_to_the_root(self, hierarchy):
        """Test ancestors are ordered from the direct parent upwards."""
        assert hierarchy.ancestors(3) == [2, 1]
        assert hierarchy.ancestors(1) == []

    def test_descendants(self, hierarchy):
        """Test descendants include every level below."""
        assert hierarchy.descendants(1) == {2, 3, 4}
        assert hierarchy.descendants(3) == set()
        assert hierarchy.descendants(99) == set()

    def test_moving_under_a_descendant_is_a_cycle(self, hierarchy):
        """Test a location cannot be moved under its own subtree."""
        assert hierarchy.would_create_cycle(1, 3) is True
        assert hierarchy.would_create_cycle(2, 2) is True

    def test_valid_moves(self, hierarchy):
        """Test moves that keep the tree acyclic."""
        assert hierarchy.would_create_cycle(3, 4) is False
        assert hierarchy.would_create_cycle(3, None) is False
        assert hierarchy.would_create_cycle(3, 99) is False
        assert hierarchy.would_create_cycle(99, 1) is False

    def test_depth(self, hierarchy):
        """Test depth counts levels in the deepest branch."""
        assert hierarchy.depth() == 3
        assert LocationHierarchy().depth() == 0

    def test_cycles_are_reported(self):
        """Test strongly connected components are returned as cycles."""
        broken = LocationHierarchy.from_pairs([(1, 2), (2, 1), (3, None)])
        assert [sorted(c) for c in broken.cycles()] == [[1, 2]]
        assert broken.depth() == 0


class TestLocationService:
    """Test location business rules."""

    def test_reparent_into_subtree_is_rejected(self, session, location_tree):
        """Test a department cannot be moved under its own neighborhood."""
        department, _, neighborhood = location_tree
        service = LocationService(session)

        with pytest.raises(BusinessRuleError):
            service.update(department.id, {'parent_id': neighborhood.id})

    def test_reparent_to_missing_location(self, session, location_tree):
        """Test moving under an unknown parent."""
        _, city, _ = location_tree
        with pytest.raises(NotFoundError):
            LocationService(session).update(city.id, {'parent_id': 9999})

    def test_duplicate_code(self, session, location_tree):
        """Test codes are unique."""
        with pytest.raises(ConflictError):
            LocationService(session).create({'name': 'Otro', 'type': 'department', 'code': '08'})

    def test_empty_code_is_stored_as_null(self, session, location_tree):
        """Test blank codes do not collide with each other."""
        service = LocationService(session)
        first = service.create({'name': 'Zona 1', 'type': 'zone', 'code': ''})
        second = service.create({'name': 'Zona 2', 'type': 'zone', 'code': ''})

        assert first.code is None
        assert second.code is None

    def test_ancestors_root_first(self, session, location_tree):
        """Test the ancestor path of a neighborhood."""
        department, city, neighborhood = location_tree
        ancestors = LocationService(session).ancestors(neighborhood.id)
        assert [loc.id for loc in ancestors] == [department.id, city.id]

    def test_tree_skips_inactive_subtrees(self, session, location_tree):
        """Test inactive locations and their children leave the default tree."""
        department, city, _ = location_tree
        service = LocationService(session)
        service.set_active(city.id, False)

        tree = service.tree()
        assert [node['id'] for node in tree] == [department.id]
        assert tree[0]['children'] == []

        full = service.tree(include_inactive=True)
        assert full[0]['children'][0]['children'][0]['name'] == 'El Prado'

    def test_stats(self, session, location_tree):
        """Test totals by type, population and depth."""
        stats = LocationService(session).stats({})

        assert stats['total'] == 3
        assert stats['active'] == 3
        assert stats['by_type']['municipality'] == 1
        assert stats['by_type']['zone'] == 0
        assert stats['population_by_type']['neighborhood'] == 1200
        assert stats['roots'] == 1
        assert stats['max_depth'] == 3


class TestLocationsAPI:
    """Test the locations endpoints."""

    def test_create_and_get_detail(self, client):
        """Test creating a branch and reading the detail view."""
        response = client.post('/api/locations', json={'name': 'Valle del Cauca', 'type': 'department', 'code': '76'})
        assert response.status_code == 201
        department_id = response.json()['id']

        response = client.post('/api/locations', json={
            'name': 'Cali', 'type': 'municipality', 'code': '76001', 'parent_id': department_id
        })
        assert response.status_code == 201
        city_id = response.json()['id']

        response = client.get(f'/api/locations/{department_id}')
        assert response.status_code == 200
        data = response.json()
        assert data['children_count'] == 1
        assert data['children'][0]['name'] == 'Cali'

        response = client.get(f'/api/locations/{city_id}')
        data = response.json()
        assert data['parent']['id'] == department_id
        assert [a['id'] for a in data['ancestors']] == [department_id]

    def test_invalid_type(self, client):
        """Test unknown location types are rejected by validation."""
        response = client.post('/api/locations', json={'name': 'X', 'type': 'planet'})
        assert response.status_code == 422

    def test_missing_location(self, client):
        """Test 404 body format."""
        response = client.get('/api/locations/9999')
        assert response.status_code == 404
        body = response.json()
        assert body['error'] == 'Location 9999 not found'
        assert body['path'] == '/api/locations/9999'

    def test_cycle_returns_400(self, client, location_tree):
        """Test reparenting into a subtree."""
        department, city, _ = location_tree
        response = client.patch(f'/api/locations/{department.id}', json={'parent_id': city.id})
        assert response.status_code == 400
        assert 'cycle' in response.json()['error']

    def test_duplicate_code_returns_409(self, client, location_tree):
        """Test code conflicts."""
        response = client.post('/api/locations', json={'name': 'Copia', 'type': 'municipality', 'code': '08001'})
        assert response.status_code == 409
        assert response.json()['detail']['code'] == '08001'

    @pytest.mark.parametrize('field', ['name', 'type', 'is_active', 'population'])
    def test_patch_null_is_rejected(self, client, location_tree, field):
        """Test explicit nulls on required columns fail validation."""
        _, city, _ = location_tree
        response = client.patch(f'/api/locations/{city.id}', json={field: None})
        assert response.status_code == 422
        assert client.get(f'/api/locations/{city.id}').json()['name'] == 'Barranquilla'

    def test_patch_null_clears_optional_fields(self, client, location_tree):
        """Test nullable columns can still be cleared."""
        _, city, _ = location_tree
        response = client.patch(f'/api/locations/{city.id}', json={'code': None})
        assert response.status_code == 200
        assert response.json()['code'] is None

    def test_list_filters(self, client, location_tree):
        """Test type filter and children counts in the list."""
        response = client.get('/api/locations', params={'type': 'municipality'})
        assert response.status_code == 200
        data = response.json()
        assert data['total'] == 1
        assert data['items'][0]['name'] == 'Barranquilla'
        assert data['items'][0]['children_count'] == 1

        response = client.get('/api/locations', params={'roots_only': True})
        assert [item['code'] for item in response.json()['items']] == ['08']

    def test_tree(self, client, location_tree):
        """Test the nested tree endpoint."""
        department, city, _ = location_tree
        response = client.get('/api/locations/tree', params={'root_id': city.id})
        assert response.status_code == 200
        tree = response.json()
        assert len(tree) == 1
        assert tree[0]['children'][0]['name'] == 'El Prado'

    def test_deactivate_and_activate(self, client, location_tree):
        """Test locations are toggled rather than deleted."""
        _, city, _ = location_tree
        response = client.post(f'/api/locations/{city.id}/deactivate')
        assert response.status_code == 200
        assert response.json()['is_active'] is False
        assert response.json()['children_count'] == 1

        response = client.post(f'/api/locations/{city.id}/activate')
        assert response.json()['is_active'] is True
        assert response.json()['children_count'] == 1

    def test_search_treats_wildcards_literally(self, client, location_tree):
        """Test % and _ in the search term only match themselves."""
        client.post('/api/locations', json={'name': 'Zona 100%', 'type': 'zone'})

        response = client.get('/api/locations', params={'search': '%'})
        assert [item['name'] for item in response.json()['items']] == ['Zona 100%']

        response = client.get('/api/locations', params={'search': '_'})
        assert response.json()['total'] == 0

    def test_bulk_action(self, client, location_tree):
        """Test bulk deactivation."""
        ids = [loc.id for loc in location_tree]
        response = client.post('/api/locations/bulk-action', json={'action': 'deactivate', 'ids': ids})
        assert response.status_code == 200
        assert response.json() == {'action': 'deactivate', 'affected': 3}

    def test_bulk_action_without_ids(self, client):
        """Test empty selections are rejected."""
        response = client.post('/api/locations/bulk-action', json={'action': 'activate', 'ids': []})
        assert response.status_code == 400

    def test_bulk_action_unknown_action(self, client, location_tree):
        """Test unsupported actions fail validation."""
        response = client.post('/api/locations/bulk-action', json={'action': 'delete', 'ids': [1]})
        assert response.status_code == 422

    def test_stats_endpoint(self, client, location_tree):
        response = client.get('/api/locations/stats')
        assert response.status_code == 200
        assert response.json()['max_depth'] == 3

    def test_export(self, client, location_tree):
        """Test the Excel export download."""
        response = client.get('/api/locations/export')
        assert response.status_code == 200
        assert 'spreadsheetml' in response.headers['content-type']
        assert 'ubicaciones' in response.headers['content-disposition']
