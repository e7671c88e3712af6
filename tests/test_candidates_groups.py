"""
Tests for candidates and groups.
"""

import pytest

from services.candidate_service import CandidateService
from services.exceptions import BusinessRuleError, ConflictError
from services.group_service import GroupService


class TestCandidateService:
    """Test candidate rules."""

    def test_name_and_email_are_unique_ignoring_case(self, session, candidate):
        """Test duplicates differing only in case are rejected."""
        service = CandidateService(session)

        with pytest.raises(ConflictError) as exc_info:
            service.create({'name': 'Otra', 'email': 'LAURA@example.com'})
        assert exc_info.value.detail['field'] == 'email'

        with pytest.raises(ConflictError) as exc_info:
            service.create({'name': 'laura restrepo', 'email': 'otra@example.com'})
        assert exc_info.value.detail['field'] == 'name'

    def test_update_keeps_own_name(self, session, candidate):
        """Test a candidate does not conflict with itself."""
        updated = CandidateService(session).update(candidate.id, {'name': 'Laura Restrepo', 'meta': 500})
        assert updated.meta == 500

    def test_delete_blocked_by_groups(self, session, candidate, group):
        """Test candidates with groups cannot be deleted."""
        with pytest.raises(BusinessRuleError) as exc_info:
            CandidateService(session).delete(candidate.id)
        assert 'associated groups' in exc_info.value.message

    def test_counts_go_through_groups(self, session, candidate, group, leader, make_planillado):
        """Test leaders and voters are counted through the candidate's groups."""
        make_planillado(group_id=group.id, leader_id=leader.id)
        make_planillado(group_id=group.id)

        counts = CandidateService(session).counts([candidate.id])[candidate.id]
        assert counts == {'groups_count': 1, 'leaders_count': 1, 'voters_count': 2}

    def test_stats(self, session, candidate, group, make_planillado):
        """Test goal progress and default labels."""
        for _ in range(25):
            make_planillado(group_id=group.id)
        CandidateService(session).create({'name': 'Pedro Gomez', 'email': 'pedro@example.com', 'party': 'Verde'})

        stats = CandidateService(session).stats({})

        assert stats['total'] == 2
        assert stats['total_groups'] == 1
        assert stats['avg_groups_per_candidate'] == 0.5
        assert stats['by_party'] == {'Sin partido': 1, 'Verde': 1}
        assert stats['by_position'] == {'Sin definir': 2}
        top = stats['goal_progress'][0]
        assert top['name'] == 'Laura Restrepo'
        assert top['current'] == 25
        assert top['percentage'] == 25


class TestGroupService:
    """Test group rules."""

    def test_create_requires_existing_candidate(self, session):
        with pytest.raises(BusinessRuleError):
            GroupService(session).create({'name': 'Grupo Sur', 'candidate_id': 9999})

    def test_name_unique_per_candidate(self, session, candidate, group):
        """Test names repeat across candidates but not within one."""
        service = GroupService(session)
        with pytest.raises(ConflictError):
            service.create({'name': 'grupo norte', 'candidate_id': candidate.id})

        other = CandidateService(session).create({'name': 'Pedro Gomez', 'email': 'pedro@example.com'})
        created = service.create({'name': 'Grupo Norte', 'candidate_id': other.id})
        assert created.id != group.id

    def test_delete_blocked_by_active_leaders(self, session, group, leader):
        with pytest.raises(BusinessRuleError) as exc_info:
            GroupService(session).delete(group.id)
        assert 'active leaders' in exc_info.value.message

    def test_delete_blocked_by_planillados(self, session, group, make_planillado):
        make_planillado(group_id=group.id)
        with pytest.raises(BusinessRuleError) as exc_info:
            GroupService(session).delete(group.id)
        assert 'planillados' in exc_info.value.message

    def test_delete_empty_group(self, session, group):
        GroupService(session).delete(group.id)
        assert GroupService(session).list({}, 1, 20)[1] == 0

    def test_stats(self, session, candidate, group, leader, make_planillado):
        """Test group totals and goal percentages."""
        make_planillado(group_id=group.id)
        make_planillado(group_id=group.id)

        stats = GroupService(session).stats({})

        assert stats['total'] == 1
        assert stats['total_leaders'] == 1
        assert stats['total_planillados'] == 2
        assert stats['by_candidate'] == {'Laura Restrepo': 1}
        assert stats['by_zone'] == {'Norte': 1}
        assert stats['goal_progress'][0]['percentage'] == 20


class TestCandidatesAPI:
    """Test the candidates endpoints."""

    def test_create_and_list(self, client):
        response = client.post('/api/candidates', json={
            'name': 'María Rodríguez', 'email': 'maria@campana.co', 'meta': 1500, 'party': 'Verde'
        })
        assert response.status_code == 201
        assert response.json()['groups_count'] == 0

        response = client.get('/api/candidates', params={'search': 'maría'})
        assert response.status_code == 200
        data = response.json()
        assert data['total'] == 1
        assert data['has_next'] is False

    def test_invalid_email(self, client):
        response = client.post('/api/candidates', json={'name': 'Sin Correo', 'email': 'no-es-correo'})
        assert response.status_code == 422

    @pytest.mark.parametrize('field', ['name', 'email', 'meta', 'is_active'])
    def test_patch_null_is_rejected(self, client, candidate, field):
        response = client.patch(f'/api/candidates/{candidate.id}', json={field: None})
        assert response.status_code == 422
        assert client.get(f'/api/candidates/{candidate.id}').json()['name'] == 'Laura Restrepo'

    def test_duplicate_returns_409(self, client, candidate):
        response = client.post('/api/candidates', json={'name': 'Laura Restrepo', 'email': 'nueva@example.com'})
        assert response.status_code == 409
        assert response.json()['detail'] == {'field': 'name', 'value': 'Laura Restrepo'}

    def test_get_with_counts(self, client, candidate, group, leader):
        response = client.get(f'/api/candidates/{candidate.id}')
        assert response.status_code == 200
        data = response.json()
        assert data['groups_count'] == 1
        assert data['leaders_count'] == 1

    def test_delete_with_groups_returns_400(self, client, candidate, group):
        response = client.delete(f'/api/candidates/{candidate.id}')
        assert response.status_code == 400

    def test_delete(self, client, candidate):
        response = client.delete(f'/api/candidates/{candidate.id}')
        assert response.status_code == 200
        assert response.json()['success'] is True
        assert client.get(f'/api/candidates/{candidate.id}').status_code == 404

    def test_bulk_deactivate(self, client, candidate):
        response = client.post('/api/candidates/bulk-action', json={'action': 'deactivate', 'ids': [candidate.id]})
        assert response.status_code == 200
        assert response.json()['affected'] == 1

        response = client.get('/api/candidates', params={'is_active': False})
        assert response.json()['total'] == 1

    def test_stats_endpoint(self, client, candidate):
        response = client.get('/api/candidates/stats')
        assert response.status_code == 200
        assert response.json()['total'] == 1

    def test_export(self, client, candidate):
        response = client.get('/api/candidates/export')
        assert response.status_code == 200
        assert 'candidatos_' in response.headers['content-disposition']


class TestGroupsAPI:
    """Test the groups endpoints."""

    def test_create_with_missing_candidate(self, client):
        response = client.post('/api/groups', json={'name': 'Grupo Sur', 'candidate_id': 9999})
        assert response.status_code == 400

    def test_create_and_get(self, client, candidate):
        response = client.post('/api/groups', json={
            'name': 'Comuna 5', 'zone': 'Oriente', 'meta': 200, 'candidate_id': candidate.id
        })
        assert response.status_code == 201
        group_id = response.json()['id']

        response = client.get(f'/api/groups/{group_id}')
        assert response.status_code == 200
        data = response.json()
        assert data['candidate']['name'] == 'Laura Restrepo'
        assert data['leaders_count'] == 0

    def test_filter_by_candidate(self, client, candidate, group):
        response = client.get('/api/groups', params={'candidate_id': candidate.id})
        assert response.json()['total'] == 1

        response = client.get('/api/groups', params={'candidate_id': candidate.id + 1})
        assert response.json()['total'] == 0

    def test_bulk_delete_blocked(self, client, group, leader):
        response = client.post('/api/groups/bulk-action', json={'action': 'delete', 'ids': [group.id]})
        assert response.status_code == 400
        assert response.json()['detail'] == {'group_id': group.id}

    @pytest.mark.parametrize('field', ['name', 'meta', 'is_active', 'candidate_id'])
    def test_patch_null_is_rejected(self, client, group, field):
        response = client.patch(f'/api/groups/{group.id}', json={field: None})
        assert response.status_code == 422

    def test_patch_clears_zone(self, client, group):
        response = client.patch(f'/api/groups/{group.id}', json={'zone': None})
        assert response.status_code == 200
        assert response.json()['zone'] is None
