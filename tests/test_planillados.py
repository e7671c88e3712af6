"""
Tests for planillados, including the pending-leader workflow.
"""

from datetime import date

import pytest

from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.notification_service import PENDING_PLANILLADOS_LINKED
from services.planillado_service import PlanilladoService, years_before


class TestYearsBefore:

    def test_regular_day(self):
        assert years_before(date(2024, 5, 10), 18) == date(2006, 5, 10)

    def test_leap_day(self):
        assert years_before(date(2024, 2, 29), 1) == date(2023, 2, 28)


class TestPlanilladoService:
    """Test planillado rules."""

    def test_create_starts_pending(self, session, leader):
        """Test new records are pending and inherit the leader's group."""
        planillado = PlanilladoService(session).create({
            'cedula': '31987654', 'first_name': 'Ana', 'last_name': 'Martinez',
            'leader_id': leader.id, 'pending_leader_cedula': '99999999'
        })

        assert planillado.status == 'pending'
        assert planillado.is_updated is True
        assert planillado.group_id == leader.group_id
        assert planillado.pending_leader_cedula is None

    def test_create_duplicate_cedula(self, session, make_planillado):
        make_planillado(cedula='31987654')
        with pytest.raises(ConflictError):
            PlanilladoService(session).create({'cedula': '31987654', 'first_name': 'Ana', 'last_name': 'Ruiz'})

    def test_create_with_unknown_leader(self, session):
        with pytest.raises(BusinessRuleError):
            PlanilladoService(session).create({
                'cedula': '31987654', 'first_name': 'Ana', 'last_name': 'Ruiz', 'leader_id': 9999
            })

    def test_bulk_verify_and_unverify(self, session, make_planillado):
        first = make_planillado()
        second = make_planillado()
        service = PlanilladoService(session)

        assert service.bulk_action('verify', [first.id, second.id]) == 2
        session.refresh(first)
        assert first.status == 'verified'

        service.bulk_action('unverify', [first.id])
        session.refresh(first)
        assert first.status == 'pending'

    def test_bulk_assign_leader(self, session, leader, make_planillado):
        """Test assigning a leader also sets the leader's group and clears the pending cedula."""
        planillado = make_planillado(pending_leader_cedula='99999999')
        PlanilladoService(session).bulk_action('assign_leader', [planillado.id], leader_id=leader.id)
        session.refresh(planillado)

        assert planillado.leader_id == leader.id
        assert planillado.group_id == leader.group_id
        assert planillado.pending_leader_cedula is None

    def test_bulk_assign_leader_missing(self, session, make_planillado):
        planillado = make_planillado()
        service = PlanilladoService(session)
        with pytest.raises(BusinessRuleError):
            service.bulk_action('assign_leader', [planillado.id])
        with pytest.raises(NotFoundError):
            service.bulk_action('assign_leader', [planillado.id], leader_id=9999)

    def test_bulk_delete(self, session, make_planillado):
        ids = [make_planillado().id for _ in range(3)]
        assert PlanilladoService(session).bulk_action('delete', ids[:2]) == 2
        assert PlanilladoService(session).list({}, 1, 20)[1] == 1

    def test_age_range_filter(self, session, make_planillado, birth_date):
        make_planillado(birth_date=birth_date(20))
        make_planillado(birth_date=birth_date(40))
        make_planillado()
        service = PlanilladoService(session)

        assert service.list({'age_range': '18-24'}, 1, 20)[1] == 1
        assert service.list({'age_range': '35-44'}, 1, 20)[1] == 1
        assert service.list({'age_range': 'Sin definir'}, 1, 20)[1] == 1

    def test_unknown_age_range(self, session):
        with pytest.raises(BusinessRuleError):
            PlanilladoService(session).list({'age_range': '1-2'}, 1, 20)

    def test_stats(self, session, leader, make_planillado, birth_date):
        """Test distributions by neighborhood, gender, age, leader and group."""
        make_planillado(neighborhood='El Prado', gender='F', birth_date=birth_date(30),
                        leader_id=leader.id, group_id=leader.group_id, status='verified')
        make_planillado(neighborhood='El Prado', gender='M', is_edil=True)
        make_planillado(neighborhood='Boston', birth_date=birth_date(16))

        stats = PlanilladoService(session).stats({})

        assert stats['total'] == 3
        assert stats['verified'] == 1
        assert stats['pending'] == 2
        assert stats['ediles'] == 1
        assert stats['by_neighborhood'] == {'El Prado': 2, 'Boston': 1}
        assert stats['by_gender'] == {'F': 1, 'M': 1, 'Sin definir': 1}
        # Minors are left out of the age distribution
        assert sum(stats['by_age'].values()) == 1
        assert stats['by_age']['25-34'] == 1
        assert stats['by_leader'] == [{'leader_id': leader.id, 'name': 'Carlos Martinez', 'count': 1}]
        assert stats['by_group'] == {'Grupo Norte': 1, 'Sin grupo': 2}

    def test_neighborhood_stats(self, session, make_planillado):
        make_planillado(neighborhood='El Prado', status='verified')
        make_planillado(neighborhood='El Prado', is_edil=True)
        make_planillado(neighborhood='Boston')
        make_planillado()

        stats = PlanilladoService(session).neighborhood_stats()

        assert stats[0]['neighborhood'] == 'El Prado'
        assert stats[0]['total'] == 2
        assert stats[0]['verified'] == 1
        assert stats[0]['pending'] == 1
        assert stats[0]['ediles'] == 1
        assert stats[0]['percentage'] == pytest.approx(66.67)

    def test_distinct_values(self, session, make_planillado):
        make_planillado(neighborhood='Boston', voting_municipality='Barranquilla')
        make_planillado(neighborhood='Alameda', voting_municipality='Barranquilla')
        make_planillado(neighborhood='')
        service = PlanilladoService(session)

        assert service.neighborhoods() == ['Alameda', 'Boston']
        assert service.municipalities() == ['Barranquilla']


class TestPendingLeaderWorkflow:
    """Test planillados imported before their leader was registered."""

    def test_pending_stats(self, session, leader, make_planillado):
        make_planillado(pending_leader_cedula=leader.cedula)
        make_planillado(pending_leader_cedula=leader.cedula)
        make_planillado(pending_leader_cedula='99999999')
        make_planillado(leader_id=leader.id)
        make_planillado()

        stats = PlanilladoService(session).pending_stats()

        assert stats['total_pending'] == 3
        assert stats['by_leader_cedula'][0] == {
            'leader_cedula': leader.cedula, 'count': 2, 'leader_registered': True
        }
        assert stats['by_leader_cedula'][1]['leader_registered'] is False
        assert stats['without_leader'] == 1
        assert stats['summary'] == {'distinct_leader_cedulas': 2, 'ready_to_link': 2}

    def test_link_pending(self, session, notifier, leader, make_planillado):
        """Test linking sets leader and group and announces it."""
        first = make_planillado(pending_leader_cedula=leader.cedula)
        make_planillado(pending_leader_cedula=leader.cedula)

        linked = PlanilladoService(session, notifier).link_pending(leader.cedula, leader.id)

        assert linked == 2
        session.refresh(first)
        assert first.leader_id == leader.id
        assert first.group_id == leader.group_id
        assert first.pending_leader_cedula is None
        assert notifier.events == [(PENDING_PLANILLADOS_LINKED, {
            'leader_id': leader.id, 'leader_name': 'Carlos Martinez', 'linked_count': 2
        })]

    def test_link_subset(self, session, leader, make_planillado):
        first = make_planillado(pending_leader_cedula=leader.cedula)
        make_planillado(pending_leader_cedula=leader.cedula)

        assert PlanilladoService(session).link_pending(leader.cedula, leader.id, [first.id]) == 1
        assert len(PlanilladoService(session).pending_for_leader(leader.cedula)) == 1

    def test_link_with_wrong_cedula(self, session, leader):
        with pytest.raises(BusinessRuleError):
            PlanilladoService(session).link_pending('99999999', leader.id)

    def test_clear_pending_keeps_registered_leaders(self, session, leader, make_planillado):
        waiting = make_planillado(pending_leader_cedula=leader.cedula)
        orphan = make_planillado(pending_leader_cedula='99999999')

        assert PlanilladoService(session).clear_pending() == 1
        session.refresh(waiting)
        session.refresh(orphan)
        assert waiting.pending_leader_cedula == leader.cedula
        assert orphan.pending_leader_cedula is None


class TestPlanilladosAPI:
    """Test the planillados endpoints."""

    def test_create_and_get(self, client, leader):
        response = client.post('/api/planillados', json={
            'cedula': '31987654',
            'first_name': 'Ana',
            'last_name': 'Martínez',
            'mobile': '3157654321',
            'neighborhood': 'El Ingenio',
            'leader_id': leader.id,
            'gender': 'F'
        })
        assert response.status_code == 201
        data = response.json()
        assert data['status'] == 'pending'
        assert data['leader']['full_name'] == 'Carlos Martinez'
        assert data['group']['name'] == 'Grupo Norte'
        assert data['age_range'] == 'Sin definir'

        response = client.get(f"/api/planillados/{data['id']}")
        assert response.status_code == 200

    def test_invalid_mobile(self, client):
        response = client.post('/api/planillados', json={
            'cedula': '31987654', 'first_name': 'Ana', 'last_name': 'Ruiz', 'mobile': '6012345678'
        })
        assert response.status_code == 422

    @pytest.mark.parametrize('field', ['cedula', 'first_name', 'last_name', 'status', 'is_edil', 'is_updated'])
    def test_patch_null_is_rejected(self, client, make_planillado, field):
        planillado = make_planillado()
        response = client.patch(f'/api/planillados/{planillado.id}', json={field: None})
        assert response.status_code == 422
        assert client.get(f'/api/planillados/{planillado.id}').json()['status'] == 'pending'

    def test_list_filters(self, client, make_planillado):
        make_planillado(first_name='Rosa', neighborhood='Boston', status='verified')
        make_planillado(neighborhood='Boston')
        make_planillado()

        response = client.get('/api/planillados', params={'neighborhood': 'Boston', 'status': 'verified'})
        data = response.json()
        assert data['total'] == 1
        assert data['items'][0]['first_name'] == 'Rosa'

        response = client.get('/api/planillados', params={'search': 'ros'})
        assert response.json()['total'] == 1

    def test_pagination(self, client, make_planillado):
        for _ in range(45):
            make_planillado()

        first = client.get('/api/planillados', params={'page_size': 20}).json()
        assert first['total'] == 45
        assert first['total_pages'] == 3
        assert len(first['items']) == 20
        assert first['has_prev'] is False
        assert first['has_next'] is True

        last = client.get('/api/planillados', params={'page': 3, 'page_size': 20}).json()
        assert len(last['items']) == 5
        assert last['has_prev'] is True
        assert last['has_next'] is False
        seen = {item['id'] for item in first['items']}
        assert seen.isdisjoint(item['id'] for item in last['items'])

        beyond = client.get('/api/planillados', params={'page': 4, 'page_size': 20}).json()
        assert beyond['items'] == []
        assert beyond['total'] == 45

    def test_page_size_limit(self, client):
        assert client.get('/api/planillados', params={'page_size': 101}).status_code == 422
        assert client.get('/api/planillados', params={'page': 0}).status_code == 422

    def test_validate(self, client, make_planillado, birth_date):
        make_planillado(cedula='31987654')
        response = client.post('/api/planillados/validate', json={
            'cedula': '31987654',
            'mobile': '123',
            'birth_date': birth_date(15).isoformat()
        })
        assert response.status_code == 200
        data = response.json()
        assert data['is_valid'] is False
        assert 'A planillado with cedula 31987654 already exists' in data['errors']
        assert 'Mobile must have 10 digits and start with 3' in data['errors']
        assert 'Must be at least 18 years old' in data['errors']

    def test_validate_excludes_record_being_edited(self, client, make_planillado):
        planillado = make_planillado(cedula='31987654')
        response = client.post('/api/planillados/validate', json={
            'cedula': '31987654', 'exclude_id': planillado.id
        })
        assert response.json()['is_valid'] is True

    def test_duplicate_check(self, client, make_planillado):
        make_planillado(cedula='31987654')
        response = client.get('/api/planillados/duplicates/check', params={'cedula': ' 31987654 '})
        assert response.json()['exists'] is True

    def test_export_filename_depends_on_filters(self, client, make_planillado):
        make_planillado(neighborhood='Boston')

        response = client.get('/api/planillados/export')
        assert response.status_code == 200
        assert 'planillados_completo_' in response.headers['content-disposition']

        response = client.get('/api/planillados/export', params={'neighborhood': 'Boston'})
        assert 'planillados_filtrados_' in response.headers['content-disposition']

    def test_bulk_export(self, client, make_planillado):
        planillado = make_planillado()
        response = client.post('/api/planillados/bulk-action', json={'action': 'export', 'ids': [planillado.id]})
        assert response.status_code == 200
        assert 'planillados_seleccionados_' in response.headers['content-disposition']

    def test_link_pending_endpoint(self, client, notifier, leader, make_planillado):
        make_planillado(pending_leader_cedula=leader.cedula)
        response = client.post('/api/planillados/link-pending', json={
            'leader_cedula': leader.cedula, 'leader_id': leader.id
        })
        assert response.status_code == 200
        assert response.json()['affected'] == 1
        assert notifier.events[0][0] == PENDING_PLANILLADOS_LINKED

    def test_clear_pending_requires_confirmation(self, client):
        response = client.post('/api/planillados/clear-pending', json={})
        assert response.status_code == 400

        response = client.post('/api/planillados/clear-pending', json={'confirm': True})
        assert response.status_code == 200
        assert response.json()['affected'] == 0

    def test_pending_leader_endpoints(self, client, make_planillado):
        make_planillado(pending_leader_cedula='99999999', first_name='Rosa')

        response = client.get('/api/planillados/pending-leader/99999999')
        assert [p['first_name'] for p in response.json()] == ['Rosa']

        response = client.get('/api/planillados/pending-leader-stats')
        assert response.json()['total_pending'] == 1

    def test_stats_endpoint(self, client, make_planillado):
        make_planillado(neighborhood='Boston')
        response = client.get('/api/planillados/stats')
        assert response.status_code == 200
        assert response.json()['by_neighborhood'] == {'Boston': 1}

    def test_delete(self, client, make_planillado):
        planillado = make_planillado()
        assert client.delete(f'/api/planillados/{planillado.id}').status_code == 200
        assert client.get(f'/api/planillados/{planillado.id}').status_code == 404
