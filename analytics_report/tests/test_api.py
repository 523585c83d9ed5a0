"""
Tests for the report API router.

The lifespan (database pool) is not started: TestClient is used without a
context manager and the database dependency is overridden per test.
"""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from analytics_report.core.dependencies import get_db_session, get_settings_dependency
from analytics_report.main import app
from analytics_report.models import ValidationError


API_MODULE = 'analytics_report.api.reports'

CSV_SNAPSHOT = (
    "id,created_at,updated_at,metric,category\n"
    "1,2023-01-02 09:00:00,2023-01-02 09:00:00,10,A\n"
    "2,2023-01-03 09:00:00,,20,A\n"
    "3,2023-01-04 09:00:00,2023-01-05 12:00:00,30,A\n"
)


@pytest.fixture
def client(mock_settings):
    app.dependency_overrides[get_settings_dependency] = lambda: mock_settings
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:

    def test_health(self, client):
        response = client.get('/api/reports/health')
        assert response.status_code == 200
        assert response.json() == {'status': 'healthy'}

    def test_root(self, client):
        assert client.get('/').json()['name'] == 'Metric Report API'


class TestRunReport:

    def test_run_returns_summaries_and_rows(self, client, three_observations):
        with patch(f'{API_MODULE}.fetch_observations', new=AsyncMock(return_value=(three_observations, []))) as fetch:
            response = client.post('/api/reports/metrics/run', json={
                'runTimestamp': '2023-03-01T06:00:00',
                'includeRows': True,
                'limit': 2,
            })

        assert response.status_code == 200
        body = response.json()
        assert body['rowCount'] == 3
        assert body['categoryCount'] == 1
        assert body['categories'][0]['category'] == 'A'
        assert body['categories'][0]['stddev'] == 10.0
        assert len(body['rows']) == 2
        assert body['rows'][0]['performance'] == 'below'
        assert body['rows'][0]['moving_std_7'] is None

        table, cutoff = fetch.call_args.args
        assert table == 'metric_observation'
        assert cutoff == datetime(2023, 1, 1)

    def test_rows_omitted_by_default(self, client, three_observations):
        with patch(f'{API_MODULE}.fetch_observations', new=AsyncMock(return_value=(three_observations, []))):
            response = client.post('/api/reports/metrics/run', json={'runTimestamp': '2023-03-01T06:00:00'})
        assert response.status_code == 200
        assert response.json()['rows'] is None

    def test_snapshot_errors_are_422(self, client):
        errors = [ValidationError(field='metric', message='not numeric', row_number=4)]
        with patch(f'{API_MODULE}.fetch_observations', new=AsyncMock(return_value=(None, errors))):
            response = client.post('/api/reports/metrics/run', json={'runTimestamp': '2023-03-01T06:00:00'})
        assert response.status_code == 422
        assert response.json()['detail'][0]['row_number'] == 4

    def test_invalid_window_is_400(self, client):
        with patch(f'{API_MODULE}.fetch_observations', new=AsyncMock()) as fetch:
            response = client.post('/api/reports/metrics/run', json={
                'runTimestamp': '2023-03-01T06:00:00',
                'shortWindow': 0,
            })
        assert response.status_code == 400
        fetch.assert_not_called()

    def test_missing_run_timestamp_is_rejected(self, client):
        response = client.post('/api/reports/metrics/run', json={})
        assert response.status_code == 422

    def test_unexpected_failure_is_500(self, client):
        with patch(f'{API_MODULE}.fetch_observations', new=AsyncMock(side_effect=RuntimeError('pool closed'))):
            response = client.post('/api/reports/metrics/run', json={'runTimestamp': '2023-03-01T06:00:00'})
        assert response.status_code == 500
        assert 'pool closed' in response.json()['detail']


class TestUpload:

    def test_upload_csv(self, client):
        response = client.post(
            '/api/reports/metrics/upload',
            files={'file': ('snapshot.csv', CSV_SNAPSHOT, 'text/csv')},
            data={'runTimestamp': '2023-03-01T06:00:00', 'includeRows': 'true'},
        )
        assert response.status_code == 200
        body = response.json()
        assert body['rowCount'] == 3
        assert [row['cumulative_sum'] for row in body['rows']] == [10.0, 30.0, 60.0]

    def test_upload_omits_rows_by_default(self, client):
        response = client.post(
            '/api/reports/metrics/upload',
            files={'file': ('snapshot.csv', CSV_SNAPSHOT, 'text/csv')},
            data={'runTimestamp': '2023-03-01T06:00:00'},
        )
        assert response.status_code == 200
        body = response.json()
        assert body['rowCount'] == 3
        assert body['rows'] is None

    def test_upload_missing_column(self, client):
        response = client.post(
            '/api/reports/metrics/upload',
            files={'file': ('snapshot.csv', 'id,metric\n1,2\n', 'text/csv')},
            data={'runTimestamp': '2023-03-01T06:00:00'},
        )
        assert response.status_code == 422


class TestCategories:

    def test_category_statistics(self, client, raw_three_observations):
        rows = raw_three_observations.to_dict('records')
        conn = AsyncMock()
        conn.fetch = AsyncMock(return_value=rows)

        async def override_db():
            yield conn

        app.dependency_overrides[get_db_session] = override_db
        response = client.get('/api/reports/metrics/categories')

        assert response.status_code == 200
        [summary] = response.json()
        assert summary['category'] == 'A'
        assert (summary['p25'], summary['median'], summary['p75']) == (15.0, 20.0, 25.0)
        assert conn.fetch.call_args.args[1] == datetime(2023, 1, 1)

    def test_empty_table(self, client):
        conn = AsyncMock()
        conn.fetch = AsyncMock(return_value=[])

        async def override_db():
            yield conn

        app.dependency_overrides[get_db_session] = override_db
        response = client.get('/api/reports/metrics/categories')

        assert response.status_code == 200
        assert response.json() == []

    def test_invalid_rows_are_422(self, client, raw_three_observations):
        rows = raw_three_observations.to_dict('records')
        rows[1]['metric'] = 'n/a'
        conn = AsyncMock()
        conn.fetch = AsyncMock(return_value=rows)

        async def override_db():
            yield conn

        app.dependency_overrides[get_db_session] = override_db
        response = client.get('/api/reports/metrics/categories')

        assert response.status_code == 422
        assert response.json()['detail'][0]['field'] == 'metric'
