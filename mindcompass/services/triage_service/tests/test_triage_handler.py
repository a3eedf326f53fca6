"""Tests for the Triage Service HTTP handler."""
import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from mindcompass.shared.utils import configure_pii_salt
from mindcompass.services.checkin_service import InMemoryCheckInStore
from mindcompass.services.llm_service import BaseLLM, LLMResponse
from mindcompass.services.triage_service.classifier import TriageClassifier
from mindcompass.services.triage_service.config import (
    CRISIS_ACKNOWLEDGMENT,
    CRISIS_PATTERN_VERSION,
)
from mindcompass.services.triage_service.crisis_detector import CrisisDetector
from mindcompass.services.triage_service.pipeline import TriagePipeline
from mindcompass.services.triage_service.questionnaire import WEEKLY_PULSE_ITEMS
from mindcompass.services.triage_service.scoring import ScoringEngine

LOW_REFLECTION = "It sounds like a steady week. Keep noticing what helps."


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def handler_module():
    from mindcompass.services.triage_service import handler
    return handler


@pytest.fixture
def llm():
    fake = MagicMock(spec=BaseLLM)
    fake.generate = AsyncMock(return_value=LLMResponse(
        text=json.dumps({"priority": "low", "reflection": LOW_REFLECTION}),
        model="test-model",
        provider="openai",
    ))
    return fake


@pytest.fixture
def test_pipeline(handler_module, llm, monkeypatch):
    detector = CrisisDetector()
    pipeline = TriagePipeline(
        scoring_engine=ScoringEngine(),
        crisis_detector=detector,
        classifier=TriageClassifier(llm, crisis_detector=detector),
        store=InMemoryCheckInStore(),
    )
    monkeypatch.setattr(handler_module, "pipeline", pipeline)
    yield pipeline
    pipeline.close()


@pytest.fixture
def client(handler_module, test_pipeline):
    """Create Flask test client."""
    handler_module.app.config['TESTING'] = True
    with handler_module.app.test_client() as client:
        yield client


def full_answers(level=0):
    return {str(item.item_id): level for item in WEEKLY_PULSE_ITEMS}


class TestHealthEndpoints:
    """Tests for /health and /ready."""

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['service'] == 'triage-service'
        assert data['pattern_version'] == CRISIS_PATTERN_VERSION

    def test_ready(self, client):
        response = client.get('/ready')

        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'ready'


class TestCatalogEndpoints:
    """Tests for /questionnaire and /resources."""

    def test_questionnaire(self, client):
        data = json.loads(client.get('/questionnaire').data)

        assert len(data['items']) == 21
        assert data['items'][0] == {
            'id': 1,
            'text': WEEKLY_PULSE_ITEMS[0].prompt_text,
            'source': 'GHQ-12',
            'reverse': True,
        }
        assert len(data['answer_labels']) == 4

    def test_resources_high(self, client):
        data = json.loads(client.get('/resources?priority=HIGH').data)

        assert data['escalation'] is True
        assert data['emergency_contacts'][0]['link'] == 'tel:18602662345'

    def test_resources_default_low(self, client):
        data = json.loads(client.get('/resources').data)
        assert data['emergency_contacts'] == []

    def test_resources_unknown_priority(self, client):
        assert client.get('/resources?priority=urgent').status_code == 400


class TestTriageEndpoint:
    """Tests for POST /triage."""

    def test_low_check_in(self, client, test_pipeline):
        response = client.post('/triage', json={
            'alias': 'River',
            'mode': 'scientific',
            'answers': full_answers(0),
            'text': 'Pretty calm week',
        })

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['assessment']['final_priority'] == 'low'
        assert data['assessment']['total_score'] == 12
        assert data['assessment']['reflection'] == LOW_REFLECTION
        assert data['handoffs'] == []
        assert 'Pretty calm week' not in response.get_data(as_text=True)
        assert test_pipeline.dispatcher.drain(timeout=5) is True

    def test_crisis_check_in_returns_handoffs(self, client):
        response = client.post('/triage', json={
            'alias': 'river',
            'mode': 'journal',
            'text': 'I want to end it all',
            'safety_plan': {
                'coping_strategy': 'Walk outside',
                'contact_name': 'Asha',
                'contact_phone': '+91 98765 43210',
            },
        })

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['assessment']['final_priority'] == 'high'
        assert data['assessment']['reflection'] == CRISIS_ACKNOWLEDGMENT
        assert data['routing']['escalation'] is True
        kinds = [h['kind'] for h in data['handoffs']]
        assert kinds == ['call', 'call', 'call', 'sms']
        assert data['handoffs'][-1]['link'].startswith('sms:+919876543210?body=')

    def test_incomplete_answers_returns_400(self, client):
        answers = full_answers(1)
        del answers['5']

        response = client.post('/triage', json={'alias': 'river', 'answers': answers})

        assert response.status_code == 400
        assert json.loads(response.data)['missing_item_ids'] == [5]

    @pytest.mark.parametrize('body', [
        None,
        {},
        {'mode': 'journal', 'text': 'no alias'},
        {'alias': 'river', 'mode': 'poetry'},
        {'alias': 'river', 'answers': {'2': 7}},
        {'alias': 'river', 'mode': 'journal', 'safety_plan': 'call mum'},
        {'alias': 'river', 'mode': 'journal', 'text': 'I want to end it all',
         'safety_plan': {'contact_name': 'Asha', 'contact_phone': '98+7654321'}},
        {'alias': 'river', 'mode': 'journal', 'text': 'I want to end it all',
         'safety_plan': {'contact_name': 'Asha', 'contact_phone': 9876543210}},
    ])
    def test_malformed_body_returns_400(self, client, body):
        if body is None:
            response = client.post('/triage', data='not json', content_type='application/json')
        else:
            response = client.post('/triage', json=body)

        assert response.status_code == 400
        assert 'error' in json.loads(response.data)

    def test_pipeline_error_defaults_to_medium(self, client, test_pipeline):
        with patch.object(test_pipeline, 'run', side_effect=RuntimeError('boom')):
            response = client.post('/triage', json={
                'alias': 'river', 'mode': 'journal', 'text': 'tired',
            })

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['assessment']['final_priority'] == 'medium'
        assert data['routing']['listener_block'] != []

    def test_pipeline_error_with_crisis_text_stays_high(self, client, test_pipeline):
        with patch.object(test_pipeline, 'run', side_effect=RuntimeError('boom')):
            response = client.post('/triage', json={
                'alias': 'river', 'mode': 'journal', 'text': "I can't go on",
            })

        data = json.loads(response.data)
        assert data['assessment']['final_priority'] == 'high'
        assert data['assessment']['reflection'] == CRISIS_ACKNOWLEDGMENT

    def test_handoff_failure_keeps_triage_result(self, client, test_pipeline):
        with patch(
            'mindcompass.services.triage_service.handler.handoff_for',
            side_effect=ValueError('Phone number must contain digits'),
        ):
            response = client.post('/triage', json={
                'alias': 'river', 'mode': 'journal', 'text': 'I want to end it all',
            })

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['assessment']['final_priority'] == 'high'
        assert data['assessment']['reflection'] == CRISIS_ACKNOWLEDGMENT
        assert data['routing']['escalation'] is True
        assert data['handoffs'] == []
        assert 'error' not in data
        assert test_pipeline.dispatcher.drain(timeout=5) is True


class TestUserEndpoints:
    """Tests for profile and stats endpoints."""

    def test_get_new_user(self, client):
        data = json.loads(client.get('/users/River').data)

        assert data['alias'] == 'river'
        assert data['profile'] is None
        assert data['stats']['total_check_ins'] == 0

    def test_put_profile(self, client):
        response = client.put('/users/river/profile', json={
            'role': 'Professional',
            'age_range': '26-30',
        })

        assert response.status_code == 200
        data = json.loads(client.get('/users/river').data)
        assert data['profile']['role'] == 'Professional'
        assert data['profile']['age_range'] == '26-30'

    def test_put_student_profile(self, client):
        response = client.put('/users/river/profile', json={
            'role': 'Student',
            'age_range': '18-21',
        })

        assert response.status_code == 200
        data = json.loads(client.get('/users/river').data)
        assert data['profile']['role'] == 'Student'
        assert data['profile']['age_range'] == '18-21'

    @pytest.mark.parametrize('body', [
        {'role': 'student', 'age_range': '18-21'},
        {'role': 'Student', 'age_range': '18-24'},
    ])
    def test_put_profile_values_are_case_and_range_exact(self, client, body):
        response = client.put('/users/river/profile', json=body)
        assert response.status_code == 400

    def test_put_profile_invalid_role(self, client):
        response = client.put('/users/river/profile', json={'role': 'Wizard', 'age_range': '26-30'})
        assert response.status_code == 400

    def test_stats_after_check_in(self, client, test_pipeline):
        client.post('/triage', json={'alias': 'river', 'answers': full_answers(0)})
        test_pipeline.dispatcher.drain(timeout=5)

        data = json.loads(client.get('/users/river').data)

        assert data['stats']['total_check_ins'] == 1
        assert data['stats']['consistency_streak'] == 1
